"""Repository protocol definitions for the persisted key-value state."""

from __future__ import annotations

from typing import Any, Protocol

ACTIVE_REPORTS_KEY = "activeReports"
DRAFT_REPORTS_KEY = "draftReports"
PENDING_NOTIFICATIONS_KEY = "pendingNotifications"
READ_NOTIFICATIONS_KEY = "readNotifications"


class KeyValueStore(Protocol):
    """Durable storage of serialized collections keyed by logical name.

    Every write replaces the whole collection stored under the key.
    """

    async def load(self, key: str) -> list[dict[str, Any]] | None: ...

    async def save(self, key: str, items: list[dict[str, Any]]) -> None: ...
