"""
lalamove_relay.publisher — SQS publisher for completed-order events.

One message per completed-order webhook. The body is the JSON-serialised
QueuedProcessingMessage; orderId, status and eventType are repeated as
String message attributes so subscriptions can filter without parsing.
"""

from __future__ import annotations

import time
from typing import Any

import boto3
from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError

from lalamove_relay.config import Settings
from lalamove_relay.exceptions import QueuePublishError
from lalamove_relay.models import QueuedProcessingMessage, WebhookEnvelope

logger = Logger(service="order-queue")


class OrderQueuePublisher:
    def __init__(self, settings: Settings, *, sqs_client: Any = None) -> None:
        self._queue_url = settings.require_queue_url()
        self._sqs: Any = sqs_client or boto3.client("sqs", region_name=settings.region)

    def publish(self, envelope: WebhookEnvelope, *, now_ms: int | None = None) -> str:
        """Queue `envelope` for asynchronous processing. Returns the SQS MessageId."""
        message = QueuedProcessingMessage.from_envelope(
            envelope,
            now_ms=int(time.time() * 1000) if now_ms is None else now_ms,
        )
        try:
            response = self._sqs.send_message(
                QueueUrl=self._queue_url,
                MessageBody=message.to_json(),
                MessageAttributes=message.message_attributes(),
            )
        except (ClientError, BotoCoreError) as exc:
            logger.exception(
                "Failed to queue order for processing", extra={"order_id": message.order_id}
            )
            raise QueuePublishError(
                f"Failed to queue order {message.order_id} for processing"
            ) from exc

        message_id = str(response.get("MessageId", ""))
        logger.info(
            "Queued order for processing",
            extra={"order_id": message.order_id, "message_id": message_id},
        )
        return message_id
