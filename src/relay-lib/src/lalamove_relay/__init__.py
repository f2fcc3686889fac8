"""
lalamove_relay — Lalamove delivery-status webhook relay library.

Shared by the webhook receiver, inline receiver and order processor Lambdas:
HMAC signing/validation, the signed provider client, SQS publishing,
DynamoDB persistence and best-effort chat notifications.
"""

from lalamove_relay.config import Settings
from lalamove_relay.exceptions import (
    ConfigurationError,
    MalformedInput,
    PersistenceError,
    UpstreamError,
    UpstreamTimeout,
    ValidationFailure,
)
from lalamove_relay.signing import sign_request, validate_webhook

__all__ = [
    "ConfigurationError",
    "MalformedInput",
    "PersistenceError",
    "Settings",
    "UpstreamError",
    "UpstreamTimeout",
    "ValidationFailure",
    "sign_request",
    "validate_webhook",
]
