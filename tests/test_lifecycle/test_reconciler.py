"""Tests for periodic status reconciliation."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from safevoice.lifecycle.reconciler import StatusReconciler
from safevoice.lifecycle.report_store import ReportStore
from safevoice.models.report import ReportStatus, StatusUpdate
from safevoice.repositories.base import ACTIVE_REPORTS_KEY
from safevoice.utils.backoff import FailureBackoff


def _remote(new_status: ReportStatus, **kwargs) -> StatusUpdate:
    return StatusUpdate(old_status=new_status, new_status=new_status, **kwargs)


async def _active_report(store: ReportStore, content: str = "Help needed"):
    draft = await store.create_draft(content=content)
    return await store.submit(draft)


class _Clock:
    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value


class _BlockingStateStore:
    """Wraps a real store; once armed, active-report writes wait for release."""

    def __init__(self, inner) -> None:
        self.inner = inner
        self.armed = False
        self.saving = asyncio.Event()
        self.release = asyncio.Event()

    async def load(self, key: str):
        return await self.inner.load(key)

    async def save(self, key: str, items) -> None:
        if self.armed and key == ACTIVE_REPORTS_KEY:
            self.saving.set()
            await self.release.wait()
        await self.inner.save(key, items)


@pytest.mark.asyncio
async def test_run_cycle_applies_newer_remote_status(state_store, submitter, status_feed) -> None:
    store = ReportStore(state_store, submitter)
    report = await _active_report(store)
    status_feed.updates[report.id] = _remote(ReportStatus.IN_PROGRESS, message="Assigned", agent_id="agent-7")
    notified = []

    async def _listener(updated_report, update) -> None:
        notified.append((updated_report.id, update.new_status))

    store.subscribe(_listener)
    reconciler = StatusReconciler(store, status_feed)

    updated = await reconciler.run_cycle()

    assert [item.id for item in updated] == [report.id]
    current = store.get_report(report.id)
    assert current.status == ReportStatus.IN_PROGRESS.value
    assert current.latest_update.old_status == ReportStatus.SUBMITTED.value
    assert current.latest_update.agent_id == "agent-7"
    assert notified == [(report.id, ReportStatus.IN_PROGRESS.value)]


@pytest.mark.asyncio
async def test_run_cycle_ignores_stale_or_equal_remote_status(state_store, submitter, status_feed) -> None:
    store = ReportStore(state_store, submitter)
    first = await _active_report(store, "one")
    second = await _active_report(store, "two")
    await store.add_status_update(first.id, _remote(ReportStatus.RECEIVED))
    status_feed.updates[first.id] = _remote(ReportStatus.SUBMITTED)
    status_feed.updates[second.id] = _remote(ReportStatus.SUBMITTED)

    updated = await StatusReconciler(store, status_feed).run_cycle()

    assert updated == []
    assert store.get_report(first.id).status == ReportStatus.RECEIVED.value
    assert len(store.get_report(second.id).status_history) == 1


@pytest.mark.asyncio
async def test_run_cycle_skips_resolved_reports_and_drafts(state_store, submitter, status_feed) -> None:
    store = ReportStore(state_store, submitter)
    resolved = await _active_report(store)
    await store.add_status_update(resolved.id, _remote(ReportStatus.RESOLVED))
    draft = await store.create_draft(content="still a draft")

    await StatusReconciler(store, status_feed).run_cycle()

    assert status_feed.calls == []
    assert store.get_report(draft.id).status == ReportStatus.DRAFT.value


@pytest.mark.asyncio
async def test_failed_fetch_backs_off_until_delay_elapses(state_store, submitter, status_feed) -> None:
    store = ReportStore(state_store, submitter)
    report = await _active_report(store)
    clock = _Clock()
    backoff = FailureBackoff(base_seconds=600, cap_seconds=1200, time_fn=clock)
    reconciler = StatusReconciler(store, status_feed, backoff=backoff)
    status_feed.errors[report.id] = httpx.ConnectError("offline")

    await reconciler.run_cycle()
    assert backoff.failure_count(report.id) == 1
    assert backoff.seconds_until_retry(report.id) == 600

    await reconciler.run_cycle()
    assert status_feed.calls == [report.id]

    clock.value += 601
    del status_feed.errors[report.id]
    status_feed.updates[report.id] = _remote(ReportStatus.RECEIVED)

    updated = await reconciler.run_cycle()

    assert [item.id for item in updated] == [report.id]
    assert backoff.failure_count(report.id) == 0
    assert status_feed.calls == [report.id, report.id]


@pytest.mark.asyncio
async def test_slow_fetch_times_out_and_counts_as_failure(state_store, submitter, status_feed) -> None:
    store = ReportStore(state_store, submitter)
    report = await _active_report(store)
    status_feed.delays[report.id] = 0.5
    status_feed.updates[report.id] = _remote(ReportStatus.RECEIVED)
    reconciler = StatusReconciler(store, status_feed, fetch_timeout_seconds=0.01)

    updated = await reconciler.run_cycle()

    assert updated == []
    assert reconciler.backoff.failure_count(report.id) == 1
    assert store.get_report(report.id).status == ReportStatus.SUBMITTED.value


@pytest.mark.asyncio
async def test_report_deleted_mid_cycle_is_skipped(state_store, submitter, status_feed) -> None:
    store = ReportStore(state_store, submitter)
    report = await _active_report(store)
    status_feed.delays[report.id] = 0.05
    status_feed.updates[report.id] = _remote(ReportStatus.RECEIVED)
    reconciler = StatusReconciler(store, status_feed)

    cycle = asyncio.create_task(reconciler.run_cycle())
    await asyncio.sleep(0.01)
    await store.delete_report(report.id)

    assert await cycle == []
    assert store.get_report(report.id) is None


@pytest.mark.asyncio
async def test_stop_waits_for_running_cycle_and_blocks_new_ones(state_store, submitter, status_feed) -> None:
    store = ReportStore(state_store, submitter)
    report = await _active_report(store)
    status_feed.delays[report.id] = 0.05
    status_feed.updates[report.id] = _remote(ReportStatus.RECEIVED)
    reconciler = StatusReconciler(store, status_feed)

    cycle = asyncio.create_task(reconciler.run_cycle())
    await asyncio.sleep(0.01)
    await reconciler.stop()

    assert reconciler.stopped is True
    assert [item.id for item in await cycle] == [report.id]
    assert store.get_report(report.id).status == ReportStatus.RECEIVED.value

    status_feed.updates[report.id] = _remote(ReportStatus.RESOLVED)
    assert await reconciler.run_cycle() == []
    assert store.get_report(report.id).status == ReportStatus.RECEIVED.value


@pytest.mark.asyncio
async def test_backoff_state_is_dropped_for_deleted_and_resolved_reports(state_store, submitter, status_feed) -> None:
    store = ReportStore(state_store, submitter)
    deleted = await _active_report(store, "one")
    resolved = await _active_report(store, "two")
    failing = await _active_report(store, "three")
    backoff = FailureBackoff(base_seconds=600, cap_seconds=1200, time_fn=_Clock())
    reconciler = StatusReconciler(store, status_feed, backoff=backoff)
    for report in (deleted, resolved, failing):
        status_feed.errors[report.id] = httpx.ConnectError("offline")

    await reconciler.run_cycle()
    assert backoff.tracked_keys() == {deleted.id, resolved.id, failing.id}

    await store.delete_report(deleted.id)
    await store.add_status_update(resolved.id, _remote(ReportStatus.RESOLVED))
    await reconciler.run_cycle()

    assert backoff.tracked_keys() == {failing.id}
    assert backoff.failure_count(failing.id) == 1
    assert len(status_feed.calls) == 3


@pytest.mark.asyncio
async def test_cancelled_cycle_still_commits_status_being_saved(state_store, submitter, status_feed) -> None:
    blocking = _BlockingStateStore(state_store)
    store = ReportStore(blocking, submitter)
    report = await _active_report(store)
    status_feed.updates[report.id] = _remote(ReportStatus.RECEIVED)
    reconciler = StatusReconciler(store, status_feed)
    blocking.armed = True

    cycle = asyncio.create_task(reconciler.run_cycle())
    await blocking.saving.wait()
    cycle.cancel()
    with pytest.raises(asyncio.CancelledError):
        await cycle

    stopping = asyncio.create_task(reconciler.stop())
    await asyncio.sleep(0)
    assert stopping.done() is False
    blocking.release.set()
    await stopping

    assert store.get_report(report.id).status == ReportStatus.RECEIVED.value
    persisted = await state_store.load(ACTIVE_REPORTS_KEY)
    assert [row["status"] for row in persisted] == [ReportStatus.RECEIVED.value]
    assert [row["status_history"][-1]["new_status"] for row in persisted] == [ReportStatus.RECEIVED.value]

def test_reconciler_rejects_invalid_limits(failing_state_store, submitter, status_feed) -> None:
    store = ReportStore(failing_state_store, submitter)

    with pytest.raises(ValueError):
        StatusReconciler(store, status_feed, fetch_timeout_seconds=0)
    with pytest.raises(ValueError):
        StatusReconciler(store, status_feed, max_concurrency=0)
