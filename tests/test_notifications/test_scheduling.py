"""Tests for alert trigger computation and the alert scheduler."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo

import pytest
from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from safevoice.models.notification import (
    DelayedTiming,
    ImmediateTiming,
    Notification,
    NotificationType,
    ScheduledTiming,
)
from safevoice.notifications.scheduling import AlertScheduler, build_alert_trigger

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


class _FakeScheduler:
    def __init__(self) -> None:
        self.jobs: dict[str, dict[str, Any]] = {}

    def add_job(self, func: Any, **kwargs: Any) -> None:
        self.jobs[kwargs["id"]] = {"func": func, **kwargs}

    def remove_job(self, job_id: str) -> None:
        if job_id not in self.jobs:
            raise JobLookupError(job_id)
        del self.jobs[job_id]


def _notification(timing) -> Notification:
    return Notification(title="Check-in", body="How are you?", type=NotificationType.CHECK_IN, timing=timing)


def test_immediate_timing_fires_one_second_later() -> None:
    trigger = build_alert_trigger(ImmediateTiming(), now=NOW, tz=timezone.utc)

    assert isinstance(trigger, DateTrigger)
    assert trigger.get_next_fire_time(None, NOW) == NOW + timedelta(seconds=1)


def test_delayed_timing_is_relative_to_now() -> None:
    trigger = build_alert_trigger(DelayedTiming(seconds=90), now=NOW, tz=timezone.utc)

    assert trigger.get_next_fire_time(None, NOW) == NOW + timedelta(seconds=90)


def test_scheduled_timing_uses_local_calendar_fields_across_dst() -> None:
    new_york = ZoneInfo("America/New_York")
    # 2024-03-10 03:30 EDT, the first morning after clocks spring forward.
    fire_at = datetime(2024, 3, 10, 7, 30, tzinfo=timezone.utc)

    trigger = build_alert_trigger(ScheduledTiming(fire_at=fire_at), now=NOW, tz=new_york)

    assert isinstance(trigger, CronTrigger)
    next_fire = trigger.get_next_fire_time(None, NOW)
    assert next_fire == fire_at
    assert (next_fire.hour, next_fire.minute) == (3, 30)


@pytest.mark.asyncio
async def test_alert_scheduler_registers_job_by_notification_id(deliverer) -> None:
    scheduler = _FakeScheduler()
    alerts = AlertScheduler(scheduler, deliverer, timezone_name="Europe/London", clock=lambda: NOW)
    notification = _notification(DelayedTiming(seconds=60))

    fire_at = alerts.schedule(notification, badge=3)

    assert fire_at == NOW + timedelta(seconds=60)
    job = scheduler.jobs[notification.id]
    assert job["args"][1] == 3
    assert job["replace_existing"] is True
    assert alerts.scheduled_ids() == {notification.id}

    await job["func"](*job["args"])

    assert [(item.id, badge) for item, badge in deliverer.delivered] == [(notification.id, 3)]
    assert alerts.scheduled_ids() == set()


def test_past_scheduled_time_fires_soon_instead_of_never(deliverer) -> None:
    scheduler = _FakeScheduler()
    alerts = AlertScheduler(scheduler, deliverer, clock=lambda: NOW)
    notification = _notification(ScheduledTiming(fire_at=NOW - timedelta(days=1)))

    fire_at = alerts.schedule(notification, badge=1)

    assert fire_at == NOW + timedelta(seconds=1)
    assert isinstance(scheduler.jobs[notification.id]["trigger"], DateTrigger)


def test_cancel_and_cancel_all(deliverer) -> None:
    scheduler = _FakeScheduler()
    alerts = AlertScheduler(scheduler, deliverer, clock=lambda: NOW)
    first = _notification(ImmediateTiming())
    second = _notification(DelayedTiming(seconds=5))
    alerts.schedule(first, badge=1)
    alerts.schedule(second, badge=2)

    assert alerts.cancel(first.id) is True
    assert alerts.cancel(first.id) is False

    alerts.cancel_all()

    assert scheduler.jobs == {}
    assert alerts.scheduled_ids() == set()
