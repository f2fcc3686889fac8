#!/usr/bin/env python3
"""
register_webhook.py — Register or re-activate the Lalamove webhook callback URL.

Sends a signed PATCH /v3/webhook with {"data": {"url": <callback>}}.
Base URL follows LALAMOVE_ENV (production → rest.lalamove.com, otherwise
the sandbox). Credentials come from SECRET / API_KEY or
LALAMOVE_CREDENTIALS_SECRET_ID.

Usage:
    uv run python scripts/register_webhook.py [--url <callback_url>] [--market MY]

Exit codes:
    0  provider accepted the URL
    1  provider returned errors, or the request failed
    2  no callback URL (pass --url or set WEBHOOK_URL)
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys

from lalamove_relay import ConfigurationError, Settings, UpstreamError
from lalamove_relay.client import LalamoveClient


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Register the Lalamove webhook callback URL")
    parser.add_argument(
        "--url",
        default=None,
        help="Callback URL to register (default: WEBHOOK_URL environment variable)",
    )
    parser.add_argument(
        "--market",
        default=None,
        help="Market header to sign with (default: LALAMOVE_MARKET or MY)",
    )
    return parser.parse_args(argv)


def register_webhook(client: LalamoveClient, url: str) -> int:
    try:
        payload = client.update_webhook(url)
    except UpstreamError as exc:
        print(f"Webhook activation failed: {exc}", file=sys.stderr)
        return 1

    if payload.get("errors"):
        print(json.dumps({"errors": payload["errors"]}, indent=2), file=sys.stderr)
        return 1
    print(json.dumps(payload, indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        settings = Settings.from_env()
        settings.require_credentials()
    except ConfigurationError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    if args.market:
        settings = dataclasses.replace(settings, market=args.market)

    url = args.url or settings.webhook_url
    if not url:
        print("No callback URL. Pass --url or set WEBHOOK_URL.", file=sys.stderr)
        return 2

    print(f"Activating Lalamove webhook at {settings.base_url} → {url}")
    return register_webhook(LalamoveClient(settings), url)


if __name__ == "__main__":
    raise SystemExit(main())
