"""
tests/test_queue_publisher.py — SQS publishing of completed-order webhooks.
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import boto3
import pytest
from botocore.exceptions import ClientError
from lalamove_relay.exceptions import ConfigurationError, QueuePublishError
from lalamove_relay.models import QueuedProcessingMessage, WebhookEnvelope
from lalamove_relay.publisher import OrderQueuePublisher
from moto import mock_aws
from relay_factories import REGION, make_settings, webhook_body


def _envelope() -> WebhookEnvelope:
    return WebhookEnvelope.from_dict(webhook_body())


def test_publishes_message_with_attributes():
    with mock_aws():
        sqs = boto3.client("sqs", region_name=REGION)
        queue_url = sqs.create_queue(QueueName="lalamove-orders")["QueueUrl"]
        publisher = OrderQueuePublisher(make_settings(queue_url=queue_url))

        message_id = publisher.publish(_envelope(), now_ms=1_754_237_000_000)

        received = sqs.receive_message(
            QueueUrl=queue_url, MessageAttributeNames=["All"], MaxNumberOfMessages=10
        )["Messages"]
        assert len(received) == 1
        assert received[0]["MessageId"] == message_id
        body = json.loads(received[0]["Body"])
        assert body["orderId"] == "186102479770"
        assert body["status"] == "COMPLETED"
        assert body["eventType"] == "ORDER_STATUS_CHANGED"
        assert body["timestamp"] == 1_754_237_000_000
        assert body["webhookData"] == webhook_body()
        attributes = received[0]["MessageAttributes"]
        assert attributes["orderId"] == {"DataType": "String", "StringValue": "186102479770"}
        assert attributes["status"]["StringValue"] == "COMPLETED"
        assert attributes["eventType"]["StringValue"] == "ORDER_STATUS_CHANGED"


def test_queued_body_round_trips_to_processing_message():
    with mock_aws():
        sqs = boto3.client("sqs", region_name=REGION)
        queue_url = sqs.create_queue(QueueName="lalamove-orders")["QueueUrl"]
        OrderQueuePublisher(make_settings(queue_url=queue_url)).publish(_envelope(), now_ms=7)

        body = sqs.receive_message(QueueUrl=queue_url)["Messages"][0]["Body"]
        message = QueuedProcessingMessage.from_json(body)
        assert message.envelope.signature == webhook_body()["signature"]
        assert message.timestamp == 7


def test_send_failure_raises_queue_publish_error():
    sqs = MagicMock()
    sqs.send_message.side_effect = ClientError(
        {"Error": {"Code": "AWS.SimpleQueueService.NonExistentQueue", "Message": "gone"}},
        "SendMessage",
    )
    publisher = OrderQueuePublisher(make_settings(), sqs_client=sqs)

    with pytest.raises(QueuePublishError, match="186102479770"):
        publisher.publish(_envelope())


def test_enqueue_time_defaults_to_now(monkeypatch):
    monkeypatch.setattr("lalamove_relay.publisher.time.time", lambda: 1_754_237_000.5)
    sqs = MagicMock()
    sqs.send_message.return_value = {"MessageId": "m-1"}

    assert OrderQueuePublisher(make_settings(), sqs_client=sqs).publish(_envelope()) == "m-1"

    body = json.loads(sqs.send_message.call_args.kwargs["MessageBody"])
    assert body["timestamp"] == 1_754_237_000_500


def test_missing_queue_url_is_a_configuration_error():
    with pytest.raises(ConfigurationError, match="ORDER_PROCESSING_QUEUE_URL"):
        OrderQueuePublisher(make_settings(queue_url=None), sqs_client=MagicMock())
