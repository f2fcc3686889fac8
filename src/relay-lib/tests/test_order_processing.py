"""
tests/test_order_processing.py — Completed-order fetch, persist and notify.

Validates:
- Completed orders are fetched with the webhook's market and announced in chat
- With a store configured, details are persisted before the success notice
- Non-completed statuses and unknown events are acknowledged without a fetch
- Any fetch or persistence failure is reported to chat and re-raised for SQS redrive
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from lalamove_relay.exceptions import PersistenceError, UpstreamError, UpstreamTimeout
from lalamove_relay.models import (
    FetchOutcome,
    FetchResult,
    OrderDetails,
    QueuedProcessingMessage,
    WebhookEnvelope,
)
from lalamove_relay.processing import (
    ProcessingDependencies,
    fetch_completed_order,
    process_message,
)
from relay_factories import make_settings, order_details_payload, webhook_body

ORDER_ID = "186102479770"


def _success() -> FetchResult:
    return FetchResult(
        FetchOutcome.SUCCESS,
        ORDER_ID,
        details=OrderDetails.from_api(order_details_payload()),
        status_code=200,
    )


def _deps(result: FetchResult | None = None, *, with_store: bool = False) -> ProcessingDependencies:
    client = MagicMock()
    client.get_order_details.return_value = result or _success()
    return ProcessingDependencies(
        settings=make_settings(persistence_enabled=with_store),
        client=client,
        notifier=MagicMock(),
        store=MagicMock() if with_store else None,
    )


def _message(**body_kwargs) -> QueuedProcessingMessage:
    envelope = WebhookEnvelope.from_dict(webhook_body(**body_kwargs))
    return QueuedProcessingMessage.from_envelope(envelope, now_ms=1_754_237_000_000)


def _order():
    return WebhookEnvelope.from_dict(webhook_body()).order


# ---------------------------------------------------------------------------
# fetch_completed_order
# ---------------------------------------------------------------------------


class TestFetchCompletedOrder:
    def test_fetches_with_webhook_market(self):
        deps = _deps()
        fetch_completed_order(_order(), deps)
        deps.client.get_order_details.assert_called_once_with(ORDER_ID, "MY_JHB")

    def test_without_store_announces_status_change(self):
        deps = _deps()
        result = fetch_completed_order(_order(), deps)
        assert result.ok is True
        deps.notifier.send.assert_called_once_with(
            f"Order {ORDER_ID} status changed to: COMPLETED"
        )

    def test_with_store_persists_then_announces(self):
        deps = _deps(with_store=True)
        calls = MagicMock()
        calls.attach_mock(deps.store.save_order_details, "save")
        calls.attach_mock(deps.notifier.send, "send")

        fetch_completed_order(_order(), deps)

        assert [c[0] for c in calls.mock_calls] == ["save", "send"]
        deps.store.save_order_details.assert_called_once_with(_success().details)
        deps.notifier.send.assert_called_once_with(
            f"Order {ORDER_ID} completed successfully and database updated"
        )

    @pytest.mark.parametrize(
        "outcome",
        [FetchOutcome.NOT_FOUND, FetchOutcome.TIMEOUT, FetchOutcome.NETWORK_ERROR],
    )
    def test_failed_fetch_is_returned_not_raised(self, outcome):
        deps = _deps(FetchResult(outcome, ORDER_ID), with_store=True)
        result = fetch_completed_order(_order(), deps)
        assert result.outcome == outcome
        deps.store.save_order_details.assert_not_called()
        deps.notifier.send.assert_not_called()

    def test_success_without_details_is_not_persisted(self):
        deps = _deps(FetchResult(FetchOutcome.SUCCESS, ORDER_ID, status_code=200), with_store=True)
        result = fetch_completed_order(_order(), deps)
        assert result.ok is False
        deps.store.save_order_details.assert_not_called()
        deps.notifier.send.assert_not_called()

    def test_persistence_error_propagates(self):
        deps = _deps(with_store=True)
        deps.store.save_order_details.side_effect = PersistenceError("write failed")
        with pytest.raises(PersistenceError):
            fetch_completed_order(_order(), deps)
        deps.notifier.send.assert_not_called()


# ---------------------------------------------------------------------------
# process_message
# ---------------------------------------------------------------------------


class TestProcessMessage:
    def test_completed_order(self):
        deps = _deps(with_store=True)
        process_message(_message(), deps)
        deps.client.get_order_details.assert_called_once()
        deps.store.save_order_details.assert_called_once()

    @pytest.mark.parametrize("status", ["ASSIGNING_DRIVER", "PICKED_UP", "CANCELLED"])
    def test_other_statuses_are_not_fetched(self, status):
        deps = _deps()
        process_message(_message(status=status), deps)
        deps.client.get_order_details.assert_not_called()
        deps.notifier.send.assert_not_called()

    def test_unknown_event_is_skipped(self):
        deps = _deps()
        process_message(_message(event_type="WALLET_BALANCE_CHANGED"), deps)
        deps.client.get_order_details.assert_not_called()

    def test_timeout_is_reported_and_raised(self):
        deps = _deps(FetchResult(FetchOutcome.TIMEOUT, ORDER_ID, error="read timed out"))
        with pytest.raises(UpstreamTimeout):
            process_message(_message(), deps)
        text = deps.notifier.send.call_args.args[0]
        assert text.startswith(f"Error processing completed order {ORDER_ID}: ")
        assert "read timed out" in text

    def test_not_found_is_reported_and_raised(self):
        deps = _deps(FetchResult(FetchOutcome.NOT_FOUND, ORDER_ID, status_code=404))
        with pytest.raises(UpstreamError):
            process_message(_message(), deps)
        deps.notifier.send.assert_called_once()

    def test_persistence_failure_is_reported_and_raised(self):
        deps = _deps(with_store=True)
        deps.store.save_order_details.side_effect = PersistenceError("write failed")
        with pytest.raises(PersistenceError):
            process_message(_message(), deps)
        deps.notifier.send.assert_called_once_with(
            f"Error processing completed order {ORDER_ID}: write failed"
        )

    def test_unexpected_errors_propagate_without_report(self):
        deps = _deps()
        deps.client.get_order_details.side_effect = RuntimeError("boom")
        with pytest.raises(RuntimeError):
            process_message(_message(), deps)
        deps.notifier.send.assert_not_called()
