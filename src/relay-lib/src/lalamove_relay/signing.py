"""
lalamove_relay.signing — HMAC-SHA256 signing for Lalamove API v3.

Both directions share one canonical signing string:

    {timestamp}\\r\\n{method}\\r\\n{path}\\r\\n\\r\\n{body}

Inbound webhooks carry the timestamp in unix SECONDS and sign the compact
JSON of their `data` field. Outbound requests use wall-clock MILLISECONDS
and sign the literal request body. Both units are part of the provider's
wire contract.

Inbound method and path are the configured webhook route, not the literal
request line.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from collections.abc import Mapping
from typing import Any

from lalamove_relay.exceptions import ConfigurationError
from lalamove_relay.models import WebhookEnvelope

DEFAULT_TOLERANCE_MS = 300_000

REASON_API_KEY_MISMATCH = "api_key_mismatch"
REASON_TIMESTAMP_INVALID = "timestamp_invalid"
REASON_TIMESTAMP_OUT_OF_WINDOW = "timestamp_out_of_window"
REASON_SIGNATURE_MISMATCH = "signature_mismatch"


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def canonical_string(timestamp: Any, method: str, path: str, body: str) -> str:
    return f"{_js_compatible(timestamp)}\r\n{method}\r\n{path}\r\n\r\n{body}"


def _js_compatible(value: Any) -> Any:
    """Integral floats as ints, the way the provider's JSON.stringify writes them."""
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e21:
        return int(value)
    if isinstance(value, Mapping):
        return {key: _js_compatible(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_js_compatible(item) for item in value]
    return value


def serialize_data(data: Mapping[str, Any]) -> str:
    """Compact JSON with insertion order kept and non-ASCII left as-is.

    `1.0` is written as `1`. Other floats keep Python's shortest repr.
    """
    return json.dumps(_js_compatible(data), separators=(",", ":"), ensure_ascii=False)


def compute_signature(secret: str, raw_signature: str) -> str:
    return hmac.new(
        secret.encode("utf-8"),
        raw_signature.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def _timestamp_ms(timestamp: Any) -> int | None:
    if isinstance(timestamp, bool):
        return None
    try:
        return int(float(timestamp) * 1000)
    except (TypeError, ValueError, OverflowError):
        return None


def check_webhook(
    envelope: WebhookEnvelope,
    *,
    secret: str,
    api_key: str,
    method: str,
    path: str,
    tolerance_ms: int = DEFAULT_TOLERANCE_MS,
    now_ms: int | None = None,
) -> str | None:
    """Return the reason an inbound webhook is rejected, or None if it is authentic.

    The replay window is inclusive: a timestamp exactly tolerance_ms away
    from now is accepted.
    """
    if envelope.api_key != api_key:
        return REASON_API_KEY_MISMATCH

    request_ms = _timestamp_ms(envelope.timestamp)
    if request_ms is None:
        return REASON_TIMESTAMP_INVALID
    current_ms = _now_ms() if now_ms is None else now_ms
    if abs(current_ms - request_ms) > tolerance_ms:
        return REASON_TIMESTAMP_OUT_OF_WINDOW

    try:
        expected = compute_signature(
            secret,
            canonical_string(envelope.timestamp, method, path, serialize_data(envelope.data)),
        )
        received = envelope.signature.encode("utf-8")
    except UnicodeEncodeError:
        # Lone surrogates from \uD800-style escapes cannot have been signed
        return REASON_SIGNATURE_MISMATCH
    if not hmac.compare_digest(expected.encode("utf-8"), received):
        return REASON_SIGNATURE_MISMATCH
    return None


def validate_webhook(
    envelope: WebhookEnvelope,
    *,
    secret: str,
    api_key: str,
    method: str,
    path: str,
    tolerance_ms: int = DEFAULT_TOLERANCE_MS,
    now_ms: int | None = None,
) -> bool:
    """True when the envelope's API key, timestamp and signature all check out. Never raises."""
    return (
        check_webhook(
            envelope,
            secret=secret,
            api_key=api_key,
            method=method,
            path=path,
            tolerance_ms=tolerance_ms,
            now_ms=now_ms,
        )
        is None
    )


def sign_request(
    method: str,
    path: str,
    body: str,
    *,
    secret: str | None,
    api_key: str | None,
    market: str = "MY",
    now_ms: int | None = None,
) -> dict[str, str]:
    """Build the headers for a signed outbound provider request.

    Raises ConfigurationError when the secret or API key is missing.
    """
    if not secret or not api_key:
        raise ConfigurationError("Missing required environment variables: SECRET and API_KEY")
    timestamp = str(_now_ms() if now_ms is None else now_ms)
    signature = compute_signature(secret, canonical_string(timestamp, method, path, body))
    return {
        "Content-Type": "application/json",
        "Authorization": f"hmac {api_key}:{timestamp}:{signature}",
        "Market": market,
    }


def sign_webhook_data(
    data: Mapping[str, Any],
    *,
    secret: str,
    timestamp: int,
    method: str,
    path: str,
) -> str:
    """Signature a provider would attach to a webhook carrying `data` at `timestamp`."""
    raw_signature = canonical_string(timestamp, method, path, serialize_data(data))
    return compute_signature(secret, raw_signature)
