#!/usr/bin/env python3
"""
send_test_webhook.py — POST a signed sample webhook to a deployed receiver.

Builds an ORDER_STATUS_CHANGED envelope the way the provider does: unix
SECONDS timestamp, HMAC-SHA256 over the compact JSON of `data`, signed for
the configured webhook route (WEBHOOK_PATH). Useful for smoke-testing a
stage after deploy.

Usage:
    uv run python scripts/send_test_webhook.py <endpoint_url> \\
        [--order-id 186102479770] [--status COMPLETED] [--market MY_JHB] [--dry-run]
"""

from __future__ import annotations

import argparse
import json
import sys
import time
import uuid
from typing import Any

import requests
from lalamove_relay import ConfigurationError, Settings
from lalamove_relay.signing import sign_webhook_data

DEFAULT_ORDER_ID = "186102479770"


def build_envelope(
    *,
    secret: str,
    api_key: str,
    path: str,
    order_id: str,
    status: str,
    market: str,
    method: str = "POST",
    timestamp: int | None = None,
) -> dict[str, Any]:
    ts = int(time.time()) if timestamp is None else timestamp
    data = {
        "order": {
            "orderId": order_id,
            "market": market,
            "driverId": "2809512",
            "previousStatus": "PICKED_UP",
            "status": status,
        },
        "updatedAt": time.strftime("%Y-%m-%dT%H:%M.00Z", time.gmtime(ts)),
    }
    return {
        "apiKey": api_key,
        "timestamp": ts,
        "signature": sign_webhook_data(data, secret=secret, timestamp=ts, method=method, path=path),
        "eventId": str(uuid.uuid4()).upper(),
        "eventType": "ORDER_STATUS_CHANGED",
        "eventVersion": "v3",
        "data": data,
    }


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send a signed sample Lalamove webhook")
    parser.add_argument(
        "endpoint",
        help="Full receiver URL, e.g. https://<api-id>.execute-api.<region>.amazonaws.com/Prod/...",
    )
    parser.add_argument("--order-id", default=DEFAULT_ORDER_ID)
    parser.add_argument("--status", default="COMPLETED")
    parser.add_argument("--market", default="MY_JHB")
    parser.add_argument("--dry-run", action="store_true", help="Print the body without sending")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        settings = Settings.from_env()
        secret, api_key = settings.require_credentials()
    except ConfigurationError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    envelope = build_envelope(
        secret=secret,
        api_key=api_key,
        path=settings.webhook_path,
        method=settings.webhook_method,
        order_id=args.order_id,
        status=args.status,
        market=args.market,
    )
    body = json.dumps(envelope, separators=(",", ":"))
    if args.dry_run:
        print(body)
        return 0

    try:
        response = requests.post(
            args.endpoint,
            data=body,
            headers={"Content-Type": "application/json"},
            timeout=settings.provider_timeout_seconds,
        )
    except requests.exceptions.RequestException as exc:
        print(f"Request failed: {exc}", file=sys.stderr)
        return 1

    print(f"HTTP {response.status_code}")
    print(response.text)
    return 0 if response.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
