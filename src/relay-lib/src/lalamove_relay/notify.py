"""
lalamove_relay.notify — Best-effort Google Chat notifications.

A side channel only: send() never raises. Failures surface as
NotificationError internally and are logged, then swallowed, so a chat
outage can never fail webhook handling or queue processing.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from typing import Any

import requests
from aws_lambda_powertools import Logger

from lalamove_relay.config import Settings
from lalamove_relay.exceptions import NotificationError

logger = Logger(service="chat-notifier")

# Asia/Kuala_Lumpur has no DST; a fixed offset avoids shipping tzdata to Lambda
GMT8 = timezone(timedelta(hours=8), "GMT+8")


def gmt8_timestamp(now: datetime | None = None) -> str:
    """Local time string in the form `MM/DD/YYYY, HH:MM:SS`, 24-hour clock."""
    current = (now or datetime.now(UTC)).astimezone(GMT8)
    return current.strftime("%m/%d/%Y, %H:%M:%S")


class ChatNotifier:
    def __init__(self, settings: Settings, *, session: Any = None) -> None:
        self._url = settings.chat_webhook_url
        self._timeout = settings.notification_timeout_seconds
        self._session: Any = session or requests.Session()

    def _post(self, text: str) -> None:
        try:
            response = self._session.post(
                self._url,
                json={"text": text},
                headers={"Content-Type": "application/json; charset=UTF-8"},
                timeout=self._timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise NotificationError(f"Chat webhook request failed: {exc}") from exc
        if not response.ok:
            raise NotificationError(
                f"Chat webhook returned {response.status_code}: {response.reason}"
            )

    def send(self, message: str, *, now: datetime | None = None) -> bool:
        """Post `{local time} {message}` to the chat channel. Returns True if delivered."""
        if not self._url:
            logger.warning("Chat webhook URL not configured", extra={"function": "send"})
            return False
        try:
            self._post(f"{gmt8_timestamp(now)} {message}")
        except NotificationError as exc:
            logger.error("Failed to send message to chat", extra={"error": str(exc)})
            return False
        logger.info("Message sent to chat", extra={"chat_message": message})
        return True
