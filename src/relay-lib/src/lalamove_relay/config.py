"""
lalamove_relay.config — Process-wide configuration.

Built once per warm container from environment variables and injected into
every component. Never mutated, never re-read mid-request.

Credentials come from SECRET / API_KEY. When either is absent and
LALAMOVE_CREDENTIALS_SECRET_ID is set, they are loaded from a Secrets Manager
secret shaped {"secret": "...", "apiKey": "..."}. Missing credentials are not
an error at load time: require_credentials() raises ConfigurationError at the
first signing operation.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import boto3
from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError

from lalamove_relay.exceptions import ConfigurationError
from lalamove_relay.signing import DEFAULT_TOLERANCE_MS

logger = Logger(service="lalamove-relay")

PRODUCTION_BASE_URL = "https://rest.lalamove.com"
SANDBOX_BASE_URL = "https://rest.sandbox.lalamove.com"

DEFAULT_MARKET = "MY"
DEFAULT_WEBHOOK_METHOD = "POST"
DEFAULT_WEBHOOK_PATH = "/Prod/bt-lalamove-webhook-v2"

DEFAULT_REGION = "ap-southeast-1"
DEFAULT_ORDERS_TABLE = "lalamove-orders"
DEFAULT_ORDER_STOPS_TABLE = "lalamove-order-stops"

PROVIDER_TIMEOUT_SECONDS = 15
NOTIFICATION_TIMEOUT_SECONDS = 10

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    secret: str | None
    api_key: str | None
    base_url: str
    market: str = DEFAULT_MARKET
    webhook_method: str = DEFAULT_WEBHOOK_METHOD
    webhook_path: str = DEFAULT_WEBHOOK_PATH
    tolerance_ms: int = DEFAULT_TOLERANCE_MS
    webhook_url: str | None = None
    queue_url: str | None = None
    chat_webhook_url: str | None = None
    persistence_enabled: bool = False
    orders_table: str = DEFAULT_ORDERS_TABLE
    order_stops_table: str = DEFAULT_ORDER_STOPS_TABLE
    region: str = DEFAULT_REGION
    provider_timeout_seconds: float = PROVIDER_TIMEOUT_SECONDS
    notification_timeout_seconds: float = NOTIFICATION_TIMEOUT_SECONDS

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        secretsmanager_client: Any = None,
    ) -> Settings:
        env = os.environ if environ is None else environ
        region = _str_or_none(env.get("AWS_REGION")) or DEFAULT_REGION

        secret = _str_or_none(env.get("SECRET"))
        api_key = _str_or_none(env.get("API_KEY"))
        secret_id = _str_or_none(env.get("LALAMOVE_CREDENTIALS_SECRET_ID"))
        if (not secret or not api_key) and secret_id:
            stored = _load_credentials_secret(
                secret_id,
                secretsmanager_client or boto3.client("secretsmanager", region_name=region),
            )
            secret = secret or _str_or_none(stored.get("secret"))
            api_key = api_key or _str_or_none(stored.get("apiKey"))

        environment = (_str_or_none(env.get("LALAMOVE_ENV")) or "sandbox").lower()
        base_url = PRODUCTION_BASE_URL if environment == "production" else SANDBOX_BASE_URL

        return cls(
            secret=secret,
            api_key=api_key,
            base_url=base_url,
            market=_str_or_none(env.get("LALAMOVE_MARKET")) or DEFAULT_MARKET,
            webhook_path=_str_or_none(env.get("WEBHOOK_PATH")) or DEFAULT_WEBHOOK_PATH,
            tolerance_ms=_as_int(env.get("WEBHOOK_TOLERANCE_MS"), DEFAULT_TOLERANCE_MS),
            webhook_url=_str_or_none(env.get("WEBHOOK_URL")),
            queue_url=_str_or_none(env.get("ORDER_PROCESSING_QUEUE_URL")),
            chat_webhook_url=_str_or_none(env.get("GCHAT_API")),
            persistence_enabled=(env.get("ORDER_PERSISTENCE_ENABLED") or "").lower() in _TRUTHY,
            orders_table=_str_or_none(env.get("ORDERS_TABLE")) or DEFAULT_ORDERS_TABLE,
            order_stops_table=_str_or_none(env.get("ORDER_STOPS_TABLE"))
            or DEFAULT_ORDER_STOPS_TABLE,
            region=region,
        )

    def require_credentials(self) -> tuple[str, str]:
        """Return (secret, api_key), raising ConfigurationError if either is missing."""
        if not self.secret or not self.api_key:
            raise ConfigurationError("Missing required environment variables: SECRET and API_KEY")
        return self.secret, self.api_key

    def require_queue_url(self) -> str:
        if not self.queue_url:
            raise ConfigurationError(
                "Missing required environment variable: ORDER_PROCESSING_QUEUE_URL"
            )
        return self.queue_url


def _str_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_int(value: Any, default: int) -> int:
    text = _str_or_none(value)
    if text is None:
        return default
    try:
        return int(text)
    except ValueError as exc:
        raise ConfigurationError(f"Expected an integer, got {text!r}") from exc


def _load_credentials_secret(secret_id: str, client: Any) -> dict[str, Any]:
    try:
        response = client.get_secret_value(SecretId=secret_id)
    except (ClientError, BotoCoreError) as exc:
        logger.exception(
            "Failed to read Lalamove credentials secret", extra={"secret_id": secret_id}
        )
        raise ConfigurationError(f"Unable to read credentials secret {secret_id!r}") from exc
    try:
        stored = json.loads(response.get("SecretString") or "{}")
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Credentials secret {secret_id!r} is not JSON") from exc
    if not isinstance(stored, dict):
        raise ConfigurationError(f"Credentials secret {secret_id!r} must be a JSON object")
    return stored
