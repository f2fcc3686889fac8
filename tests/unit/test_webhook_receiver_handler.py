from __future__ import annotations

import base64
import json
import sys
import time
from pathlib import Path
from unittest.mock import MagicMock

import boto3
import pytest
from moto import mock_aws

# Add project root, relay-lib and its test factories to path
sys.path.insert(0, str(Path(__file__).resolve().parents[2]))
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src" / "relay-lib" / "src"))
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src" / "relay-lib" / "tests"))

from lalamove_relay.exceptions import ConfigurationError, QueuePublishError
from relay_factories import API_KEY, REGION, SECRET, WEBHOOK_PATH, make_settings, webhook_body

from src.webhook_receiver import handler as receiver


class FakeLambdaContext:
    function_name = "webhook-receiver"
    memory_limit_in_mb = 256
    invoked_function_arn = "arn:aws:lambda:ap-southeast-1:111111111111:function:webhook-receiver"
    aws_request_id = "req-123"


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Mocked AWS Credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")  # pragma: allowlist secret
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")  # pragma: allowlist secret
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)
    monkeypatch.setenv("AWS_REGION", REGION)


@pytest.fixture
def publisher():
    publisher = MagicMock()
    publisher.publish.return_value = "msg-1"
    return publisher


@pytest.fixture
def deps(monkeypatch, publisher):
    deps = receiver.ReceiverDependencies(settings=make_settings(), publisher=publisher)
    monkeypatch.setattr(receiver, "_dependencies", lambda: deps)
    return deps


def _event(body) -> dict:
    if isinstance(body, dict):
        body = json.dumps(body)
    return {
        "httpMethod": "POST",
        "path": WEBHOOK_PATH,
        "body": body,
        "isBase64Encoded": False,
        "requestContext": {"requestId": "api-req-1"},
    }


def _fresh_body(**kwargs) -> dict:
    return webhook_body(timestamp=int(time.time()), **kwargs)


def _invoke(event: dict) -> tuple[int, dict]:
    result = receiver.handler(event, FakeLambdaContext())
    return result["statusCode"], json.loads(result["body"])


# ---------------------------------------------------------------------------
# Screening
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("body", [None, ""])
def test_empty_body_is_activation_ping(deps, publisher, body):
    status, payload = _invoke(_event(body))
    assert status == 200
    assert payload == {"message": "Post webhook activation data"}
    publisher.publish.assert_not_called()


def test_invalid_json_skips_validation(deps, publisher, monkeypatch):
    check = MagicMock()
    monkeypatch.setattr("lalamove_relay.receiver.check_webhook", check)

    status, payload = _invoke(_event("{not json"))

    assert status == 400
    assert payload == {"error": "Invalid JSON in request body"}
    check.assert_not_called()
    publisher.publish.assert_not_called()


def test_body_missing_envelope_fields(deps):
    status, payload = _invoke(_event({"eventType": "ORDER_STATUS_CHANGED", "data": {}}))
    assert status == 400
    assert payload == {"error": "Invalid webhook body"}


def test_order_without_status_is_invalid_body(deps, publisher):
    body = _fresh_body()
    del body["data"]["order"]["status"]

    status, payload = _invoke(_event(body))

    assert status == 400
    assert payload == {"error": "Invalid webhook body"}
    publisher.publish.assert_not_called()


def test_bad_signature_is_rejected(deps, publisher):
    body = _fresh_body()
    body["signature"] = "0" * 64

    status, payload = _invoke(_event(body))

    assert status == 400
    assert payload == {"error": "Invalid Webhook"}
    publisher.publish.assert_not_called()


def test_lone_surrogate_in_data_is_rejected(deps, publisher):
    body = _fresh_body()
    body["data"]["updatedAt"] = "\ud800"

    status, payload = _invoke(_event(body))

    assert status == 400
    assert payload == {"error": "Invalid Webhook"}
    publisher.publish.assert_not_called()


def test_wrong_api_key_is_rejected(deps):
    body = _fresh_body()
    body["apiKey"] = "pk_someone_else"
    status, _ = _invoke(_event(body))
    assert status == 400


def test_replayed_webhook_is_rejected(deps, publisher):
    stale = webhook_body(timestamp=int(time.time()) - 600)
    status, payload = _invoke(_event(stale))
    assert status == 400
    assert payload == {"error": "Invalid Webhook"}
    publisher.publish.assert_not_called()


def test_unknown_event_type_is_acknowledged(deps, publisher):
    status, payload = _invoke(_event(_fresh_body(event_type="DRIVER_ASSIGNED")))
    assert status == 200
    assert payload == {"message": "Webhook received"}
    publisher.publish.assert_not_called()


@pytest.mark.parametrize("order_status", ["ASSIGNING_DRIVER", "ON_GOING", "CANCELLED"])
def test_non_completed_status_is_acknowledged(deps, publisher, order_status):
    status, payload = _invoke(_event(_fresh_body(status=order_status)))
    assert status == 200
    assert payload == {
        "message": "Webhook received and status updated",
        "orderId": "186102479770",
        "status": order_status,
    }
    publisher.publish.assert_not_called()


# ---------------------------------------------------------------------------
# Queue topology
# ---------------------------------------------------------------------------


def test_completed_order_is_queued(deps, publisher):
    body = _fresh_body()
    status, payload = _invoke(_event(body))

    assert status == 200
    assert payload == {
        "message": "Webhook queued for processing",
        "orderId": "186102479770",
        "status": "COMPLETED",
    }
    envelope = publisher.publish.call_args.args[0]
    assert envelope.raw == body


def test_base64_encoded_body(deps, publisher):
    encoded = base64.b64encode(json.dumps(_fresh_body()).encode("utf-8")).decode("ascii")
    event = _event(encoded)
    event["isBase64Encoded"] = True

    status, _ = _invoke(event)

    assert status == 200
    publisher.publish.assert_called_once()


def test_publish_failure_returns_500(deps, publisher):
    publisher.publish.side_effect = QueuePublishError("queue unavailable")

    status, payload = _invoke(_event(_fresh_body()))

    assert status == 500
    assert payload == {
        "error": "Failed to queue webhook for processing",
        "orderId": "186102479770",
    }


def test_missing_credentials_return_500(monkeypatch, publisher):
    deps = receiver.ReceiverDependencies(
        settings=make_settings(secret=None, api_key=None), publisher=publisher
    )
    monkeypatch.setattr(receiver, "_dependencies", lambda: deps)

    status, payload = _invoke(_event(_fresh_body()))

    assert status == 500
    assert payload == {"error": "Internal server error"}


def test_unconfigured_queue_returns_500(monkeypatch):
    def _raise():
        raise ConfigurationError("ORDER_PROCESSING_QUEUE_URL is not set")

    monkeypatch.setattr(receiver, "_dependencies", _raise)
    status, _ = _invoke(_event(_fresh_body()))
    assert status == 500


@pytest.mark.parametrize("body", [None, ""])
def test_activation_ping_does_not_need_configuration(monkeypatch, body):
    def _raise():
        raise ConfigurationError("ORDER_PROCESSING_QUEUE_URL is not set")

    monkeypatch.setattr(receiver, "_dependencies", _raise)

    assert _invoke(_event(body)) == (200, {"message": "Post webhook activation data"})


def test_malformed_body_does_not_need_configuration(monkeypatch):
    def _raise():
        raise ConfigurationError("SECRET and API_KEY are not set")

    monkeypatch.setattr(receiver, "_dependencies", _raise)

    assert _invoke(_event("{not json")) == (400, {"error": "Invalid JSON in request body"})


# ---------------------------------------------------------------------------
# End to end against moto SQS
# ---------------------------------------------------------------------------


def test_queues_to_sqs_from_environment(monkeypatch):
    with mock_aws():
        sqs = boto3.client("sqs", region_name=REGION)
        queue_url = sqs.create_queue(QueueName="lalamove-order-processing")["QueueUrl"]
        monkeypatch.setenv("SECRET", SECRET)
        monkeypatch.setenv("API_KEY", API_KEY)
        monkeypatch.setenv("WEBHOOK_PATH", WEBHOOK_PATH)
        monkeypatch.setenv("ORDER_PROCESSING_QUEUE_URL", queue_url)
        monkeypatch.setattr(receiver, "_dependencies_cache", None)

        status, _ = _invoke(_event(_fresh_body()))

        assert status == 200
        messages = sqs.receive_message(QueueUrl=queue_url, MessageAttributeNames=["All"])[
            "Messages"
        ]
        assert len(messages) == 1
        assert json.loads(messages[0]["Body"])["orderId"] == "186102479770"
        assert messages[0]["MessageAttributes"]["status"]["StringValue"] == "COMPLETED"
