"""Platform alert delivery (webhook relay or disabled)."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from safevoice.models.notification import Notification

logger = logging.getLogger(__name__)


class NotificationDeliverer(Protocol):
    """Platform boundary for alert delivery and the app badge."""

    async def is_authorized(self) -> bool: ...

    async def deliver(self, notification: Notification, badge: int) -> bool: ...

    async def set_badge_count(self, count: int) -> bool: ...


class DisabledNotificationDeliverer:
    """Deliverer used when alerts are not authorized; the inbox still records everything."""

    async def is_authorized(self) -> bool:
        return False

    async def deliver(self, notification: Notification, badge: int) -> bool:
        del notification, badge
        return False

    async def set_badge_count(self, count: int) -> bool:
        del count
        return False


class WebhookNotificationDeliverer:
    """Relay alerts to a push gateway webhook."""

    def __init__(
        self,
        webhook_url: str,
        *,
        timeout_seconds: float = 10.0,
        session: httpx.AsyncClient | None = None,
    ):
        self.webhook_url = webhook_url.strip()
        self.session = session or httpx.AsyncClient(timeout=timeout_seconds)

    async def is_authorized(self) -> bool:
        return bool(self.webhook_url)

    async def deliver(self, notification: Notification, badge: int) -> bool:
        """Post the alert using its display text so disguise mode is honored."""
        return await self._post(self._build_alert_payload(notification, badge), notification_id=notification.id)

    async def set_badge_count(self, count: int) -> bool:
        return await self._post({"event": "badge", "badge": max(0, count)})

    async def close(self) -> None:
        """Close underlying HTTP client."""
        await self.session.aclose()

    async def _post(self, payload: dict[str, Any], *, notification_id: str | None = None) -> bool:
        try:
            response = await self.session.post(self.webhook_url, json=payload)
            response.raise_for_status()
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Alert webhook delivery failed: event=%s notification_id=%s error=%s",
                payload.get("event"),
                notification_id,
                exc,
            )
            return False
        return True

    def _build_alert_payload(self, notification: Notification, badge: int) -> dict[str, Any]:
        return {
            "event": "alert",
            "id": notification.id,
            "title": notification.display_title,
            "body": notification.display_body,
            "badge": badge,
            "sound": "default",
            "user_info": {
                "id": notification.id,
                "type": str(notification.type),
                "reference_id": notification.reference_id or "",
            },
        }
