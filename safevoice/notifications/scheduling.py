"""Alert fire-time computation and APScheduler-backed alert dispatch."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo

import structlog
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from safevoice.models.notification import (
    DelayedTiming,
    ImmediateTiming,
    Notification,
    NotificationTiming,
    ScheduledTiming,
)
from safevoice.notifications.delivery import NotificationDeliverer

logger = structlog.get_logger(__name__)

IMMEDIATE_DELAY_SECONDS = 1


def resolve_timezone(value: str | tzinfo) -> tzinfo:
    if isinstance(value, tzinfo):
        return value
    return ZoneInfo(value)


def build_alert_trigger(timing: NotificationTiming, *, now: datetime, tz: tzinfo) -> BaseTrigger:
    """Translate a notification timing into an APScheduler trigger.

    Relative timings become one-shot date triggers. Absolute timings are
    decomposed into wall-clock calendar fields in ``tz`` and matched by a cron
    trigger, so zone and daylight-saving rules are applied at fire time.
    """
    if isinstance(timing, ImmediateTiming):
        return DateTrigger(run_date=now + timedelta(seconds=IMMEDIATE_DELAY_SECONDS), timezone=tz)

    if isinstance(timing, DelayedTiming):
        return DateTrigger(run_date=now + timedelta(seconds=timing.seconds), timezone=tz)

    if isinstance(timing, ScheduledTiming):
        fire_at = timing.fire_at
        local = fire_at.astimezone(tz) if fire_at.tzinfo else fire_at.replace(tzinfo=tz)
        return CronTrigger(
            year=local.year,
            month=local.month,
            day=local.day,
            hour=local.hour,
            minute=local.minute,
            second=local.second,
            timezone=tz,
        )

    raise ValueError(f"Unsupported notification timing: {timing!r}")


class AlertScheduler:
    """Schedule platform alerts on an APScheduler scheduler.

    Job ids equal notification ids so alerts can be cancelled individually.
    """

    def __init__(
        self,
        scheduler: BaseScheduler,
        deliverer: NotificationDeliverer,
        *,
        timezone_name: str | tzinfo = "UTC",
        clock: Callable[[], datetime] | None = None,
    ):
        self.scheduler = scheduler
        self.deliverer = deliverer
        self.timezone = resolve_timezone(timezone_name)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._job_ids: set[str] = set()

    def schedule(self, notification: Notification, badge: int) -> datetime:
        """Register the alert job and return its first fire time."""
        now = self._clock()
        trigger = build_alert_trigger(notification.timing, now=now, tz=self.timezone)
        fire_at = trigger.get_next_fire_time(None, now)
        if fire_at is None:
            # Calendar time already passed; fire as soon as possible instead of never.
            trigger = DateTrigger(run_date=now + timedelta(seconds=IMMEDIATE_DELAY_SECONDS), timezone=self.timezone)
            fire_at = trigger.get_next_fire_time(None, now)

        self.scheduler.add_job(
            self._fire,
            trigger=trigger,
            args=[notification.model_copy(deep=True), badge],
            id=notification.id,
            name=f"alert:{notification.type}",
            replace_existing=True,
            coalesce=True,
            misfire_grace_time=None,
        )
        self._job_ids.add(notification.id)
        logger.info(
            "alert_scheduled",
            notification_id=notification.id,
            timing=notification.timing.kind,
            fire_at=fire_at.isoformat(),
        )
        return fire_at

    def cancel(self, notification_id: str) -> bool:
        self._job_ids.discard(notification_id)
        try:
            self.scheduler.remove_job(notification_id)
        except JobLookupError:
            return False
        return True

    def cancel_all(self) -> None:
        for job_id in list(self._job_ids):
            self.cancel(job_id)

    def scheduled_ids(self) -> set[str]:
        return set(self._job_ids)

    async def _fire(self, notification: Notification, badge: int) -> None:
        self._job_ids.discard(notification.id)
        delivered = await self.deliverer.deliver(notification, badge)
        logger.info("alert_fired", notification_id=notification.id, delivered=delivered)
