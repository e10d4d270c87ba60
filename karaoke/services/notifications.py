"""
Karaoke Queue Service - Push Notification Dispatcher

Sends messages through the Expo push HTTP API using httpx.  Delivery is
best-effort: every failure (no token, malformed token, transport error,
non-2xx reply) is logged and reported as ``False`` / a lower sent-count,
never raised, so the triggering operation is unaffected.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from loguru import logger

from karaoke import database
from karaoke.config import (
    EXPO_ACCESS_TOKEN,
    EXPO_CHUNK_SIZE,
    EXPO_PUSH_URL,
    HTTP_TIMEOUT,
    NOTIFICATIONS_ENABLED,
)

_EXPO_TOKEN_RE = re.compile(r"^(ExponentPushToken|ExpoPushToken)\[[^\]]+\]$")


def is_expo_push_token(token: Any) -> bool:
    return isinstance(token, str) and bool(_EXPO_TOKEN_RE.match(token))


@dataclass
class PushNotification:
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)
    sound: Optional[str] = "default"

    def to_message(self, to: str) -> dict[str, Any]:
        return {
            "to": to,
            "title": self.title,
            "body": self.body,
            "data": self.data,
            "sound": self.sound,
        }


def approval_notification(request_id: str) -> PushNotification:
    return PushNotification(
        title="Song Approved! 🎤",
        body="Your song request has been approved",
        data={"request_id": request_id, "type": "approval"},
    )


def rejection_notification(request_id: str, reason: str) -> PushNotification:
    return PushNotification(
        title="Song Request Update",
        body=f"Your request was declined: {reason}",
        data={"request_id": request_id, "type": "rejection"},
    )


def broadcast_notification(message: str, event_id: Optional[str] = None) -> PushNotification:
    return PushNotification(
        title="Announcement 📢",
        body=message,
        data={"event_id": event_id, "type": "broadcast"},
    )


class PushNotifier:
    """Expo push client.  Owns its httpx client unless one is injected."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        push_url: str = EXPO_PUSH_URL,
        access_token: str = EXPO_ACCESS_TOKEN,
        enabled: bool = NOTIFICATIONS_ENABLED,
        chunk_size: int = EXPO_CHUNK_SIZE,
    ):
        self._client = client
        self._owns_client = client is None
        self.push_url = push_url
        self.access_token = access_token
        self.enabled = enabled
        self.chunk_size = chunk_size

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=HTTP_TIMEOUT)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def _send(self, messages: list[dict[str, Any]]) -> int:
        """POST messages in chunks; return how many were accepted."""
        sent = 0
        client = self._get_client()
        for start in range(0, len(messages), self.chunk_size):
            chunk = messages[start : start + self.chunk_size]
            try:
                response = await client.post(self.push_url, json=chunk, headers=self._headers())
                response.raise_for_status()
                tickets = response.json().get("data", [])
            except httpx.HTTPStatusError as e:
                logger.error(
                    "❌ Expo push rejected chunk ({} message(s)): HTTP {}",
                    len(chunk),
                    e.response.status_code,
                )
                continue
            except (httpx.HTTPError, ValueError, AttributeError) as e:
                logger.error("❌ Error sending push notification chunk: {}", e)
                continue

            if not isinstance(tickets, list):
                tickets = [tickets]
            for ticket in tickets:
                if isinstance(ticket, dict) and ticket.get("status") == "error":
                    logger.warning("⚠️ Expo push ticket error: {}", ticket.get("message"))
                else:
                    sent += 1
        return sent

    async def notify(self, user_id: str, notification: PushNotification) -> bool:
        """Send *notification* to one user.  Returns True if Expo accepted it."""
        if not self.enabled:
            logger.debug("🔕 Notifications disabled — skipping push to {}", user_id)
            return False

        user = await database.get_user(user_id)
        token = user.get("push_token") if user else None
        if not token:
            logger.warning("⚠️ No push token for user {}", user_id)
            return False
        if not is_expo_push_token(token):
            logger.error("❌ Invalid push token for user {}: {}", user_id, token)
            return False

        sent = await self._send([notification.to_message(token)])
        if sent:
            logger.info("🔔 Push sent to {}: {}", user_id, notification.title)
        return sent > 0

    async def broadcast(self, notification: PushNotification) -> int:
        """Send *notification* to every user with a valid token.  Returns the sent count."""
        if not self.enabled:
            logger.debug("🔕 Notifications disabled — skipping broadcast")
            return 0

        messages = [
            notification.to_message(row["push_token"])
            for row in await database.get_push_tokens()
            if is_expo_push_token(row["push_token"])
        ]
        if not messages:
            return 0

        sent = await self._send(messages)
        logger.info("📢 Broadcast sent to {}/{} device(s)", sent, len(messages))
        return sent
