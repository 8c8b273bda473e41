"""Notification inbox: pending/read sets, badge count, and alert dispatch."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from safevoice.errors import PersistenceError
from safevoice.models.notification import Notification
from safevoice.notifications.delivery import NotificationDeliverer
from safevoice.notifications.scheduling import AlertScheduler
from safevoice.repositories.base import (
    PENDING_NOTIFICATIONS_KEY,
    READ_NOTIFICATIONS_KEY,
    KeyValueStore,
)

logger = structlog.get_logger(__name__)

PersistenceErrorHandler = Callable[[PersistenceError], None]


class NotificationInbox:
    """Own every notification; the badge count is the number of pending ones.

    Notifications are always recorded in the inbox. Platform alerts are only
    scheduled when the deliverer reports authorization, and any delivery
    problem is logged without affecting inbox state.
    """

    def __init__(
        self,
        state_store: KeyValueStore,
        deliverer: NotificationDeliverer,
        alert_scheduler: AlertScheduler | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
        on_persistence_error: PersistenceErrorHandler | None = None,
    ):
        self.state_store = state_store
        self.deliverer = deliverer
        self.alert_scheduler = alert_scheduler
        self.on_persistence_error = on_persistence_error
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._pending: list[Notification] = []
        self._read: list[Notification] = []
        self._lock = asyncio.Lock()

    async def load(self) -> None:
        async with self._lock:
            self._pending = await self._load_collection(PENDING_NOTIFICATIONS_KEY)
            self._read = await self._load_collection(READ_NOTIFICATIONS_KEY)
        logger.info("notification_inbox_loaded", pending=len(self._pending), read=len(self._read))

    async def enqueue(self, notification: Notification) -> Notification:
        """Record a notification as pending and dispatch its alert."""
        async with self._lock:
            stored = self._append_pending(notification)
            badge = len(self._pending)
            await self._persist(PENDING_NOTIFICATIONS_KEY)
        await self._dispatch(stored, badge)
        return stored.model_copy(deep=True)

    async def enqueue_unless_recent(
        self,
        reference_id: str,
        since: datetime,
        build: Callable[[], Notification],
    ) -> Notification | None:
        """Enqueue ``build()`` unless a notification for ``reference_id`` was created at or after ``since``.

        The check and the insert happen under one lock so concurrent status
        events for the same report cannot both pass the check.
        """
        async with self._lock:
            if self._has_recent(reference_id, since):
                return None
            stored = self._append_pending(build())
            badge = len(self._pending)
            await self._persist(PENDING_NOTIFICATIONS_KEY)
        await self._dispatch(stored, badge)
        return stored.model_copy(deep=True)

    async def mark_as_read(self, notification_id: str) -> bool:
        """Move a pending notification to the read set; repeated calls are no-ops."""
        async with self._lock:
            index = self._index_of(notification_id)
            if index is None:
                return False
            notification = self._pending.pop(index)
            notification.mark_read(self._clock())
            self._read.append(notification)
            badge = len(self._pending)
            await self._persist(PENDING_NOTIFICATIONS_KEY, READ_NOTIFICATIONS_KEY)
        logger.info("notification_marked_read", notification_id=notification_id, badge=badge)
        await self._push_badge(badge)
        return True

    async def cancel(self, notification_id: str) -> bool:
        """Drop a pending notification and its scheduled alert."""
        async with self._lock:
            index = self._index_of(notification_id)
            if index is None:
                return False
            self._pending.pop(index)
            badge = len(self._pending)
            await self._persist(PENDING_NOTIFICATIONS_KEY)
        if self.alert_scheduler is not None:
            self.alert_scheduler.cancel(notification_id)
        await self._push_badge(badge)
        return True

    async def clear_all(self) -> None:
        """Empty both sets, cancel scheduled alerts, and reset the badge."""
        async with self._lock:
            self._pending.clear()
            self._read.clear()
            await self._persist(PENDING_NOTIFICATIONS_KEY, READ_NOTIFICATIONS_KEY)
        if self.alert_scheduler is not None:
            self.alert_scheduler.cancel_all()
        logger.info("notification_inbox_cleared")
        await self._push_badge(0)

    def pending_notifications(self) -> list[Notification]:
        return [item.model_copy(deep=True) for item in self._pending]

    def read_notifications(self) -> list[Notification]:
        return [item.model_copy(deep=True) for item in self._read]

    def badge_count(self) -> int:
        return len(self._pending)

    def _append_pending(self, notification: Notification) -> Notification:
        stored = notification.model_copy(deep=True)
        stored.is_read = False
        stored.read_at = None
        self._pending.append(stored)
        return stored

    def _has_recent(self, reference_id: str, since: datetime) -> bool:
        return any(
            item.reference_id == reference_id and item.created_at >= since
            for item in (*self._pending, *self._read)
        )

    def _index_of(self, notification_id: str) -> int | None:
        for index, item in enumerate(self._pending):
            if item.id == notification_id:
                return index
        return None

    async def _dispatch(self, notification: Notification, badge: int) -> None:
        try:
            authorized = await self.deliverer.is_authorized()
        except Exception as exc:  # noqa: BLE001
            logger.warning("notification_authorization_check_failed", error=str(exc))
            authorized = False

        if not authorized:
            logger.info("notification_alert_skipped_unauthorized", notification_id=notification.id)
            return

        if self.alert_scheduler is not None:
            try:
                self.alert_scheduler.schedule(notification, badge)
            except Exception as exc:  # noqa: BLE001
                logger.error("notification_alert_schedule_failed", notification_id=notification.id, error=str(exc))
        await self._push_badge(badge)

    async def _push_badge(self, badge: int) -> None:
        try:
            if await self.deliverer.is_authorized():
                await self.deliverer.set_badge_count(max(0, badge))
        except Exception as exc:  # noqa: BLE001
            logger.warning("badge_update_failed", badge=badge, error=str(exc))

    async def _persist(self, *keys: str) -> None:
        for key in keys:
            collection = self._pending if key == PENDING_NOTIFICATIONS_KEY else self._read
            try:
                payload = [item.model_dump(mode="json") for item in collection]
                await self.state_store.save(key, payload)
            except Exception as exc:  # noqa: BLE001
                self._report_persistence_error(PersistenceError(key, exc))

    async def _load_collection(self, key: str) -> list[Notification]:
        try:
            rows = await self.state_store.load(key)
        except Exception as exc:  # noqa: BLE001
            self._report_persistence_error(PersistenceError(key, exc))
            return []

        loaded: list[Notification] = []
        for row in rows or []:
            try:
                loaded.append(Notification.model_validate(row))
            except ValueError as exc:
                logger.warning("stored_notification_invalid", key=key, error=str(exc))
        return loaded

    def _report_persistence_error(self, error: PersistenceError) -> None:
        logger.error("notification_persistence_failed", key=error.key, error=str(error.cause))
        if self.on_persistence_error is not None:
            self.on_persistence_error(error)
