"""API endpoints for the notification inbox and badge."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from safevoice.models.notification import Notification
from safevoice.notifications.deduplicator import NotificationDeduplicator
from safevoice.notifications.inbox import NotificationInbox

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


class NotificationFeedResponse(BaseModel):
    """Pending and read notifications plus the badge count."""

    pending: list[Notification]
    read: list[Notification]
    badge_count: int


class NotificationActionResponse(BaseModel):
    notification_id: str
    updated: bool


class BadgeResponse(BaseModel):
    badge_count: int


def _inbox(request: Request) -> NotificationInbox:
    inbox = getattr(request.app.state, "notification_inbox", None)
    if inbox is None:
        raise HTTPException(status_code=503, detail="Notification inbox is not configured")
    return inbox


def _deduplicator(request: Request) -> NotificationDeduplicator:
    deduplicator = getattr(request.app.state, "deduplicator", None)
    if deduplicator is None:
        raise HTTPException(status_code=503, detail="Notifications are not configured")
    return deduplicator


def _present(notification: Notification, *, disguise: bool) -> Notification:
    if not disguise:
        return notification
    return notification.model_copy(
        update={"title": notification.display_title, "body": notification.display_body},
    )


@router.get("/", response_model=NotificationFeedResponse)
async def list_notifications(request: Request, disguise: bool = False) -> NotificationFeedResponse:
    """Return the inbox, newest first; ``disguise`` masks text of disguised items."""
    inbox = _inbox(request)
    pending = sorted(inbox.pending_notifications(), key=lambda item: item.created_at, reverse=True)
    read = sorted(inbox.read_notifications(), key=lambda item: item.created_at, reverse=True)
    return NotificationFeedResponse(
        pending=[_present(item, disguise=disguise) for item in pending],
        read=[_present(item, disguise=disguise) for item in read],
        badge_count=inbox.badge_count(),
    )


@router.get("/badge", response_model=BadgeResponse)
async def badge_count(request: Request) -> BadgeResponse:
    return BadgeResponse(badge_count=_inbox(request).badge_count())


@router.post("/{notification_id}/read", response_model=NotificationActionResponse)
async def mark_notification_read(notification_id: str, request: Request) -> NotificationActionResponse:
    updated = await _inbox(request).mark_as_read(notification_id)
    return NotificationActionResponse(notification_id=notification_id, updated=updated)


@router.delete("/{notification_id}", response_model=NotificationActionResponse)
async def cancel_notification(notification_id: str, request: Request) -> NotificationActionResponse:
    updated = await _inbox(request).cancel(notification_id)
    if not updated:
        raise HTTPException(status_code=404, detail=f"Pending notification '{notification_id}' not found")
    return NotificationActionResponse(notification_id=notification_id, updated=True)


@router.delete("/", status_code=204)
async def clear_notifications(request: Request) -> None:
    await _inbox(request).clear_all()


@router.post("/check-in", response_model=Notification, status_code=201)
async def schedule_check_in(request: Request) -> Notification:
    return await _deduplicator(request).schedule_check_in()


@router.post("/draft-reminders/{report_id}", response_model=Notification, status_code=201)
async def schedule_draft_reminder(report_id: str, request: Request) -> Notification:
    store = getattr(request.app.state, "report_store", None)
    report = store.get_report(report_id) if store is not None else None
    if report is None or not report.is_draft:
        raise HTTPException(status_code=404, detail=f"Draft '{report_id}' not found")
    return await _deduplicator(request).schedule_draft_reminder(report)
