"""Turn report status changes into deduplicated user notifications."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone

import structlog

from safevoice.models.notification import Notification, NotificationType, ScheduledTiming
from safevoice.models.report import Report, ReportStatus, StatusUpdate
from safevoice.notifications.inbox import NotificationInbox

logger = structlog.get_logger(__name__)

_STATUS_COPY: dict[str, tuple[str, str]] = {
    ReportStatus.RECEIVED.value: (
        "Report Received",
        "Your report has been received and is under review.",
    ),
    ReportStatus.IN_PROGRESS.value: (
        "Report In Progress",
        "Your report is now being handled by a specialist.",
    ),
    ReportStatus.RESOLVED.value: (
        "Report Resolved",
        "Your report has been resolved. Thank you for your help.",
    ),
}


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class NotificationDeduplicator:
    """Decide whether a status update deserves a new notification.

    A report counts as already notified when the inbox (pending or read)
    holds a notification referencing it created no earlier than
    ``update.timestamp - window``. The match is by report and recency only,
    so several distinct updates inside one window collapse into a single
    notification.
    """

    def __init__(
        self,
        inbox: NotificationInbox,
        *,
        window_seconds: float = 60.0,
        disguise: bool = False,
        draft_reminder_delay: timedelta = timedelta(hours=24),
        check_in_delay: timedelta = timedelta(hours=48),
        clock: Callable[[], datetime] | None = None,
    ):
        if window_seconds < 0:
            raise ValueError("window_seconds must be >= 0")
        self.inbox = inbox
        self.window = timedelta(seconds=window_seconds)
        self.disguise = disguise
        self.draft_reminder_delay = draft_reminder_delay
        self.check_in_delay = check_in_delay
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def handle_status_update(self, report: Report, update: StatusUpdate) -> Notification | None:
        """Enqueue a report-update notification unless one is recent enough."""
        since = _as_aware(update.timestamp) - self.window
        notification = await self.inbox.enqueue_unless_recent(
            report.id,
            since,
            lambda: self.build_status_notification(report.id, update),
        )
        if notification is None:
            logger.info("status_notification_suppressed", report_id=report.id, new_status=ReportStatus(update.new_status).value)
        else:
            logger.info(
                "status_notification_created",
                report_id=report.id,
                notification_id=notification.id,
                new_status=ReportStatus(update.new_status).value,
            )
        return notification

    async def scan_reports(self, reports: Iterable[Report]) -> list[Notification]:
        """Catch up on the latest history entry of each report.

        Submission confirmations are shown synchronously to the submitter and
        are not turned into notifications here.
        """
        created: list[Notification] = []
        for report in reports:
            update = report.latest_update
            if update is None or update.new_status == ReportStatus.SUBMITTED:
                continue
            notification = await self.handle_status_update(report, update)
            if notification is not None:
                created.append(notification)
        return created

    async def schedule_draft_reminder(self, report: Report) -> Notification:
        """Remind the user to finish a draft after the reminder delay."""
        notification = Notification(
            title="Complete Your Report",
            body="You have a report draft waiting to be submitted.",
            type=NotificationType.DRAFT_REMINDER,
            timing=ScheduledTiming(fire_at=self._clock() + self.draft_reminder_delay),
            created_at=self._clock(),
            reference_id=report.id,
            disguised=self.disguise,
        )
        return await self.inbox.enqueue(notification)

    async def schedule_check_in(self) -> Notification:
        notification = Notification(
            title="SafeVoice Check-In",
            body="Just checking in - how are you doing today?",
            type=NotificationType.CHECK_IN,
            timing=ScheduledTiming(fire_at=self._clock() + self.check_in_delay),
            created_at=self._clock(),
            disguised=self.disguise,
        )
        return await self.inbox.enqueue(notification)

    def build_status_notification(self, report_id: str, update: StatusUpdate) -> Notification:
        title, body = _STATUS_COPY.get(
            ReportStatus(update.new_status).value,
            ("Report Status Update", update.message),
        )
        return Notification(
            title=title,
            body=body,
            type=NotificationType.REPORT_UPDATE,
            created_at=self._clock(),
            reference_id=report_id,
            disguised=self.disguise,
        )
