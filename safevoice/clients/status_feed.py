"""HTTP polling client for remote report status."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from safevoice.models.report import ReportStatus, StatusUpdate, status_message

logger = logging.getLogger(__name__)


class HttpStatusFeed:
    """Look up the latest remote status for a report.

    The remote service does not know the local status, so ``old_status`` is
    taken from ``previous_status`` when present; the report store re-stamps it
    with the report's current status when the update is applied.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 15.0,
        session: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or httpx.AsyncClient(timeout=float(timeout_seconds), follow_redirects=True)

    async def fetch_latest_status(self, report_id: str) -> StatusUpdate | None:
        """Return the latest status update, or None when the service has nothing."""
        response = await self.session.get(f"{self.base_url}/reports/{report_id}/status")
        if response.status_code in {204, 404}:
            return None
        response.raise_for_status()

        payload = response.json()
        if not isinstance(payload, dict) or not payload.get("status"):
            return None
        return self._parse_update(report_id, payload)

    async def close(self) -> None:
        """Close underlying HTTP client."""
        await self.session.aclose()

    def _parse_update(self, report_id: str, payload: dict[str, Any]) -> StatusUpdate | None:
        try:
            new_status = ReportStatus(str(payload["status"]))
        except ValueError:
            logger.warning("Ignoring unknown remote status: report_id=%s status=%s", report_id, payload["status"])
            return None

        previous = payload.get("previous_status")
        try:
            old_status = ReportStatus(str(previous)) if previous else new_status
        except ValueError:
            old_status = new_status

        update: dict[str, Any] = {
            "timestamp": self._parse_timestamp(payload.get("timestamp")),
            "old_status": old_status,
            "new_status": new_status,
            "message": str(payload.get("message") or status_message(new_status)),
            "action_required": bool(payload.get("action_required", False)),
            "action_type": payload.get("action_type") or None,
            "agent_id": payload.get("agent_id") or None,
        }
        if payload.get("id"):
            update["id"] = str(payload["id"])
        return StatusUpdate.model_validate(update)

    def _parse_timestamp(self, value: Any) -> datetime:
        if isinstance(value, str) and value:
            try:
                parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return datetime.now(timezone.utc)
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc)
