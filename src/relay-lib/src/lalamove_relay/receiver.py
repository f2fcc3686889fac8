"""
lalamove_relay.receiver — Inbound webhook screening shared by both receivers.

read_webhook() and screen_envelope() walk the decision table every
deployment shares. Together they either answer the request themselves or
hand back the order of an authentic ORDER_STATUS_CHANGED / COMPLETED webhook
for the topology-specific step (queue publish or inline fetch). The first two
rows need no configuration:

    empty body                         → 200 "Post webhook activation data"
    not JSON / not an envelope         → 400, validator never called
    api key / replay window / HMAC     → 400 "Invalid Webhook"
    unrecognised event type            → 200 "Webhook received"
    order status other than COMPLETED  → 200 "Webhook received and status updated"
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from aws_lambda_powertools import Logger

from lalamove_relay.config import Settings
from lalamove_relay.exceptions import MalformedInput, ValidationFailure
from lalamove_relay.models import WebhookEnvelope, WebhookOrder
from lalamove_relay.notify import ChatNotifier
from lalamove_relay.signing import check_webhook

logger = Logger(service="webhook-receiver")

ACTIVATION_MESSAGE = "Post webhook activation data"
RECEIVED_MESSAGE = "Webhook received"
STATUS_UPDATED_MESSAGE = "Webhook received and status updated"
INVALID_JSON_ERROR = "Invalid JSON in request body"
INVALID_BODY_ERROR = "Invalid webhook body"
INVALID_WEBHOOK_ERROR = "Invalid Webhook"
INTERNAL_ERROR = "Internal server error"


def response(status_code: int, body: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def error_response(status_code: int, error: str, **extra: Any) -> dict[str, Any]:
    return response(status_code, {"error": error, **extra})


def read_body(event: dict[str, Any]) -> str | None:
    """Return the raw request body, or None when it is absent or empty."""
    raw_body = event.get("body")
    if raw_body is None or raw_body == "":
        return None
    if not isinstance(raw_body, str):
        raise MalformedInput(INVALID_JSON_ERROR)
    if event.get("isBase64Encoded"):
        try:
            raw_body = base64.b64decode(raw_body, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise MalformedInput(INVALID_JSON_ERROR) from exc
    return raw_body or None


def parse_envelope(raw_body: str) -> WebhookEnvelope:
    try:
        decoded = json.loads(raw_body)
    except json.JSONDecodeError as exc:
        raise MalformedInput(INVALID_JSON_ERROR) from exc
    return WebhookEnvelope.from_dict(decoded)


def authenticate(envelope: WebhookEnvelope, settings: Settings) -> None:
    """Raise ValidationFailure unless the envelope is authentic.

    Raises ConfigurationError when the secret or API key is not configured.
    """
    secret, api_key = settings.require_credentials()
    reason = check_webhook(
        envelope,
        secret=secret,
        api_key=api_key,
        method=settings.webhook_method,
        path=settings.webhook_path,
        tolerance_ms=settings.tolerance_ms,
    )
    if reason is not None:
        raise ValidationFailure(reason)


def read_webhook(event: dict[str, Any]) -> WebhookEnvelope | dict[str, Any]:
    """Parse the request into an envelope, or answer it without any settings.

    An empty body is the provider's activation ping. Malformed bodies are
    rejected here so neither case depends on the receiver being configured.
    """
    try:
        raw_body = read_body(event)
        if raw_body is None:
            logger.debug("Empty body received")
            return response(200, {"message": ACTIVATION_MESSAGE})
        return parse_envelope(raw_body)
    except MalformedInput as exc:
        logger.warning("Error parsing request body", extra={"error": str(exc)})
        return error_response(400, str(exc))


def screen_envelope(
    envelope: WebhookEnvelope,
    *,
    settings: Settings,
    notifier: ChatNotifier | None = None,
) -> WebhookOrder | dict[str, Any]:
    """Return the order of an authentic completed webhook, or the final response."""
    try:
        authenticate(envelope, settings)
    except ValidationFailure as exc:
        logger.warning("Invalid webhook", extra={"reason": exc.reason})
        if notifier is not None:
            notifier.send(f"Invalid webhook signature: {envelope.signature}")
        return error_response(400, INVALID_WEBHOOK_ERROR)

    order = envelope.order
    if order is None or not envelope.is_order_status_change:
        logger.info("Unsupported event type", extra={"event_type": envelope.event_type})
        return response(200, {"message": RECEIVED_MESSAGE})

    logger.info(
        "Order status changed",
        extra={"order_id": order.order_id, "status": order.status},
    )
    if not order.is_completed:
        return response(
            200,
            {"message": STATUS_UPDATED_MESSAGE, "orderId": order.order_id, "status": order.status},
        )
    return order
