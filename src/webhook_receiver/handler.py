"""
webhook_receiver.handler — Lalamove webhook receiver Lambda (queue topology).

API Gateway REST proxy → screen the webhook → publish completed orders to
SQS and acknowledge immediately. The order_processor Lambda consumes the
queue. This function never calls the provider itself; deploy it instead of
webhook_inline, never alongside it on the same route.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.logging import correlation_paths
from aws_lambda_powertools.utilities.typing import LambdaContext
from lalamove_relay import ConfigurationError, Settings
from lalamove_relay.exceptions import QueuePublishError
from lalamove_relay.models import WebhookEnvelope, WebhookOrder
from lalamove_relay.publisher import OrderQueuePublisher
from lalamove_relay.receiver import (
    INTERNAL_ERROR,
    error_response,
    read_webhook,
    response,
    screen_envelope,
)

logger = Logger(service="webhook-receiver")
tracer = Tracer()

QUEUED_MESSAGE = "Webhook queued for processing"
QUEUE_FAILED_ERROR = "Failed to queue webhook for processing"


@dataclass(frozen=True)
class ReceiverDependencies:
    settings: Settings
    publisher: OrderQueuePublisher


# Built on first use and reused across warm starts
_dependencies_cache: ReceiverDependencies | None = None


def _dependencies() -> ReceiverDependencies:
    global _dependencies_cache
    if _dependencies_cache is None:
        settings = Settings.from_env()
        _dependencies_cache = ReceiverDependencies(
            settings=settings,
            publisher=OrderQueuePublisher(settings),
        )
    return _dependencies_cache


@logger.inject_lambda_context(
    correlation_id_path=correlation_paths.API_GATEWAY_REST, clear_state=True
)
@tracer.capture_lambda_handler
def handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
    """Webhook receiver entry point."""
    envelope = read_webhook(event)
    if not isinstance(envelope, WebhookEnvelope):
        return envelope

    try:
        deps = _dependencies()
        order = screen_envelope(envelope, settings=deps.settings)
    except ConfigurationError:
        logger.exception("Webhook receiver is not configured")
        return error_response(500, INTERNAL_ERROR)

    if not isinstance(order, WebhookOrder):
        return order
    logger.append_keys(order_id=order.order_id)

    try:
        message_id = deps.publisher.publish(envelope)
    except QueuePublishError:
        return error_response(500, QUEUE_FAILED_ERROR, orderId=order.order_id)

    logger.info("Webhook queued", extra={"message_id": message_id})
    return response(
        200,
        {"message": QUEUED_MESSAGE, "orderId": order.order_id, "status": order.status},
    )
