"""
lalamove_relay.client — Signed HTTP client for the Lalamove REST API v3.

Every request is signed per call (fresh millisecond timestamp) and bounded
by the provider timeout (15 s). Order-detail fetches never raise for
provider or network failures: they return a tagged FetchResult so callers
can tell a timeout from a non-2xx from a transport error.
"""

from __future__ import annotations

import json
from typing import Any

import requests
from aws_lambda_powertools import Logger

from lalamove_relay.config import Settings
from lalamove_relay.exceptions import UpstreamError, UpstreamTimeout
from lalamove_relay.models import FetchOutcome, FetchResult, OrderDetails
from lalamove_relay.signing import sign_request

logger = Logger(service="lalamove-client")

ORDER_DETAILS_PATH = "/v3/orders/{order_id}"
WEBHOOK_PATH = "/v3/webhook"


class LalamoveClient:
    """
    Lalamove API client bound to one Settings instance.

    The `session` argument accepts any object with a requests-compatible
    `request()` method; tests pass a MagicMock.
    """

    def __init__(self, settings: Settings, *, session: Any = None) -> None:
        self._settings = settings
        self._session: Any = session or requests.Session()

    def _send(
        self,
        method: str,
        path: str,
        *,
        body: str = "",
        market: str | None = None,
    ) -> requests.Response:
        secret, api_key = self._settings.require_credentials()
        headers = sign_request(
            method,
            path,
            body,
            secret=secret,
            api_key=api_key,
            market=market or self._settings.market,
        )
        return self._session.request(
            method,
            f"{self._settings.base_url}{path}",
            headers=headers,
            data=body or None,
            timeout=self._settings.provider_timeout_seconds,
        )

    def get_order_details(self, order_id: str, market: str | None = None) -> FetchResult:
        """Fetch the full order snapshot for `order_id`.

        ConfigurationError (missing credentials) is the only exception that
        escapes; every provider or transport failure becomes a FetchResult.
        """
        path = ORDER_DETAILS_PATH.format(order_id=order_id)
        logger.debug("Fetching order details", extra={"order_id": order_id, "market": market})

        try:
            response = self._send("GET", path, market=market)
        except requests.exceptions.Timeout as exc:
            logger.error(
                "Timed out fetching order details",
                extra={"order_id": order_id, "timeout": self._settings.provider_timeout_seconds},
            )
            return FetchResult(FetchOutcome.TIMEOUT, order_id, error=str(exc))
        except requests.exceptions.RequestException as exc:
            logger.exception("Network error fetching order details", extra={"order_id": order_id})
            return FetchResult(FetchOutcome.NETWORK_ERROR, order_id, error=str(exc))

        if not response.ok:
            logger.error(
                "Failed to fetch order details",
                extra={"order_id": order_id, "status_code": response.status_code},
            )
            outcome = FetchOutcome.UPSTREAM_ERROR
            if response.status_code == 404:
                outcome = FetchOutcome.NOT_FOUND
            return FetchResult(
                outcome,
                order_id,
                status_code=response.status_code,
                error=f"HTTP {response.status_code}",
            )

        try:
            details = OrderDetails.from_api(response.json())
        except ValueError as exc:
            logger.error(
                "Order details response could not be parsed",
                extra={"order_id": order_id, "error": str(exc)},
            )
            return FetchResult(
                FetchOutcome.UPSTREAM_ERROR,
                order_id,
                status_code=response.status_code,
                error=str(exc),
            )

        return FetchResult(
            FetchOutcome.SUCCESS,
            order_id,
            details=details,
            status_code=response.status_code,
        )

    def update_webhook(self, url: str) -> dict[str, Any]:
        """Register (or re-activate) the webhook callback URL with the provider.

        Returns the provider's JSON body; an `errors` key in it means the
        provider refused the URL. Raises UpstreamTimeout / UpstreamError on
        transport failures and non-JSON responses.
        """
        body = json.dumps({"data": {"url": url}}, separators=(",", ":"))
        logger.info("Activating webhook", extra={"url": url})
        try:
            response = self._send("PATCH", WEBHOOK_PATH, body=body)
        except requests.exceptions.Timeout as exc:
            raise UpstreamTimeout("Request timeout while activating webhook") from exc
        except requests.exceptions.RequestException as exc:
            raise UpstreamError(f"Failed to activate webhook: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(
                "Webhook activation returned a non-JSON response",
                status_code=response.status_code,
            ) from exc

        if not isinstance(payload, dict):
            payload = {"data": payload}
        if payload.get("errors"):
            logger.error("Webhook activation rejected", extra={"errors": payload["errors"]})
        return payload
