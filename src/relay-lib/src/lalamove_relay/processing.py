"""
lalamove_relay.processing — Completed-order handling.

fetch_completed_order() is the step both topologies share: fetch the
provider snapshot, persist it when persistence is enabled, and notify.

process_message() is the queue-topology wrapper. It never retries: any
failure is reported to chat and re-raised so the SQS redrive policy
(retry, then dead-letter queue) decides what happens next. Processing is
safe to repeat: stores are upserts and a duplicate chat line is tolerated.
"""

from __future__ import annotations

from dataclasses import dataclass

from aws_lambda_powertools import Logger

from lalamove_relay.client import LalamoveClient
from lalamove_relay.config import Settings
from lalamove_relay.exceptions import RelayError
from lalamove_relay.models import (
    FetchResult,
    QueuedProcessingMessage,
    WebhookEventType,
    WebhookOrder,
)
from lalamove_relay.notify import ChatNotifier
from lalamove_relay.store import OrderStore

logger = Logger(service="order-processing")


@dataclass(frozen=True)
class ProcessingDependencies:
    settings: Settings
    client: LalamoveClient
    notifier: ChatNotifier
    store: OrderStore | None = None  # None while persistence is disabled


def fetch_completed_order(order: WebhookOrder, deps: ProcessingDependencies) -> FetchResult:
    """Fetch, persist (if enabled) and announce a completed order.

    Fetch failures are returned in the FetchResult, not raised.
    PersistenceError from the store propagates.
    """
    result = deps.client.get_order_details(order.order_id, order.market)
    details = result.details
    if details is None or not result.ok:
        logger.error(
            "Failed to fetch order details for completed order",
            extra={"order_id": order.order_id, "outcome": result.outcome},
        )
        return result

    logger.info("Fetched order details for completed order", extra={"order_id": order.order_id})

    if deps.store is not None:
        deps.store.save_order_details(details)
        deps.notifier.send(f"Order {order.order_id} completed successfully and database updated")
    else:
        deps.notifier.send(f"Order {order.order_id} status changed to: {order.status}")
    return result


def process_message(message: QueuedProcessingMessage, deps: ProcessingDependencies) -> None:
    """Handle one queued webhook. Raises on any failure so SQS can redrive it."""
    envelope = message.envelope
    logger.info(
        "Processing webhook message",
        extra={
            "event_type": envelope.event_type,
            "order_id": message.order_id,
            "status": message.status,
        },
    )

    if envelope.event_type != WebhookEventType.ORDER_STATUS_CHANGED or envelope.order is None:
        logger.info("Unsupported event type", extra={"event_type": envelope.event_type})
        return

    order = envelope.order
    if not order.is_completed:
        logger.info(
            "Order status updated (no further processing required)",
            extra={"order_id": order.order_id, "status": order.status},
        )
        return

    try:
        fetch_completed_order(order, deps).raise_for_outcome()
    except RelayError as exc:
        logger.exception("Error processing completed order", extra={"order_id": order.order_id})
        deps.notifier.send(f"Error processing completed order {order.order_id}: {exc}")
        raise

    logger.info("Successfully processed completed order", extra={"order_id": order.order_id})
