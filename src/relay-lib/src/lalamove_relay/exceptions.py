"""
lalamove_relay.exceptions — Error taxonomy for the webhook relay.

Validation and parsing errors end a request with a 4xx. Upstream and
persistence errors raised inside the queue processor are left to propagate
so that SQS retry / dead-letter handling takes over.
"""


class RelayError(Exception):
    """Base class for all relay errors."""


class ConfigurationError(RelayError):
    """Raised when required configuration (secret, API key, endpoints) is missing.

    Fatal: never caught by library code.
    """


class MalformedInput(RelayError):
    """Raised when an inbound body or queue record cannot be parsed."""


class ValidationFailure(RelayError):
    """
    Raised when a parsed webhook fails authentication.

    Attributes:
        reason: Machine-readable rejection reason from signing.check_webhook
                (api_key_mismatch, timestamp_invalid, timestamp_out_of_window,
                signature_mismatch).
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Webhook validation failed: {reason}")


class UpstreamError(RelayError):
    """
    Raised when a provider call fails (non-2xx, unparseable body, network failure).

    Attributes:
        order_id:    Order the call was made for, when applicable.
        status_code: HTTP status returned by the provider, when one was received.
    """

    def __init__(
        self,
        message: str,
        *,
        order_id: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.order_id = order_id
        self.status_code = status_code
        super().__init__(message)


class UpstreamTimeout(UpstreamError):
    """Raised when a provider call exceeds its timeout."""


class PersistenceError(RelayError):
    """Raised when an order or stop upsert fails. Partial writes are not rolled back."""


class QueuePublishError(RelayError):
    """Raised when a completed-order event cannot be published to SQS."""


class NotificationError(RelayError):
    """Raised inside the chat notifier only; always logged and swallowed there."""
