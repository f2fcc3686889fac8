"""
webhook_inline.handler — Lalamove webhook receiver Lambda (synchronous topology).

API Gateway REST proxy → screen the webhook → for completed orders, fetch
order details from the provider inside the request, persist when enabled,
and notify chat before answering. Deploy this instead of webhook_receiver
when no processing queue is provisioned.

Completed-order responses:
    fetched                    → 200 "Webhook received, order details fetched and updated"
    404 / non-2xx / bad body   → 200 "Webhook received but failed to fetch order details"
    provider timeout           → 500 "Request timeout while processing order"
    network or other failure   → 500 "Error processing completed order"
"""

from __future__ import annotations

from typing import Any

from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.logging import correlation_paths
from aws_lambda_powertools.utilities.typing import LambdaContext
from lalamove_relay import ConfigurationError, Settings
from lalamove_relay.client import LalamoveClient
from lalamove_relay.models import FetchOutcome, WebhookEnvelope, WebhookOrder
from lalamove_relay.notify import ChatNotifier
from lalamove_relay.processing import ProcessingDependencies, fetch_completed_order
from lalamove_relay.receiver import (
    INTERNAL_ERROR,
    error_response,
    read_webhook,
    response,
    screen_envelope,
)
from lalamove_relay.store import OrderStore

logger = Logger(service="webhook-inline")
tracer = Tracer()

FETCHED_MESSAGE = "Webhook received, order details fetched and updated"
FETCH_FAILED_MESSAGE = "Webhook received but failed to fetch order details"
TIMEOUT_ERROR = "Request timeout while processing order"
PROCESSING_ERROR = "Error processing completed order"

_dependencies_cache: ProcessingDependencies | None = None


def _dependencies() -> ProcessingDependencies:
    global _dependencies_cache
    if _dependencies_cache is None:
        settings = Settings.from_env()
        _dependencies_cache = ProcessingDependencies(
            settings=settings,
            client=LalamoveClient(settings),
            notifier=ChatNotifier(settings),
            store=OrderStore(settings) if settings.persistence_enabled else None,
        )
    return _dependencies_cache


@logger.inject_lambda_context(
    correlation_id_path=correlation_paths.API_GATEWAY_REST, clear_state=True
)
@tracer.capture_lambda_handler
def handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
    """Inline webhook receiver entry point."""
    envelope = read_webhook(event)
    if not isinstance(envelope, WebhookEnvelope):
        return envelope

    try:
        deps = _dependencies()
        order = screen_envelope(envelope, settings=deps.settings, notifier=deps.notifier)
    except ConfigurationError:
        logger.exception("Inline webhook receiver is not configured")
        return error_response(500, INTERNAL_ERROR)

    if not isinstance(order, WebhookOrder):
        return order
    logger.append_keys(order_id=order.order_id)

    try:
        result = fetch_completed_order(order, deps)
    except Exception:
        logger.exception("Error processing completed order")
        return error_response(500, PROCESSING_ERROR, orderId=order.order_id)

    if result.ok:
        return response(
            200,
            {"message": FETCHED_MESSAGE, "orderId": order.order_id, "status": order.status},
        )
    if result.outcome == FetchOutcome.TIMEOUT:
        return error_response(500, TIMEOUT_ERROR, orderId=order.order_id)
    if result.outcome == FetchOutcome.NETWORK_ERROR:
        return error_response(500, PROCESSING_ERROR, orderId=order.order_id)
    return response(
        200,
        {"message": FETCH_FAILED_MESSAGE, "orderId": order.order_id, "status": order.status},
    )
