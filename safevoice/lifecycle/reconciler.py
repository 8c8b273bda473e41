"""Periodic reconciliation of active report status against the remote feed."""

from __future__ import annotations

import asyncio

import structlog

from safevoice.clients.base import StatusFeed
from safevoice.errors import InvalidTransitionError, NotFoundError, ValidationError
from safevoice.lifecycle.report_store import ReportStore
from safevoice.models.report import Report, ReportStatus, StatusUpdate, status_rank
from safevoice.utils.backoff import FailureBackoff

logger = structlog.get_logger(__name__)


class StatusReconciler:
    """Advance in-flight reports to the newest status reported upstream.

    Each cycle fetches status for every active, unresolved report that is not
    backing off after earlier failures. Fetches run concurrently; every
    resulting mutation goes through ``ReportStore.add_status_update``. Status
    applications are shielded from cancellation and ``stop`` waits for them.
    """

    def __init__(
        self,
        store: ReportStore,
        status_feed: StatusFeed,
        *,
        fetch_timeout_seconds: float = 15.0,
        max_concurrency: int = 5,
        backoff: FailureBackoff | None = None,
    ):
        if fetch_timeout_seconds <= 0:
            raise ValueError("fetch_timeout_seconds must be > 0")
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")

        self.store = store
        self.status_feed = status_feed
        self.fetch_timeout_seconds = fetch_timeout_seconds
        self.backoff = backoff or FailureBackoff()
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._cycle_lock = asyncio.Lock()
        self._inflight: set[asyncio.Task[Report]] = set()
        self._stopping = False

    @property
    def stopped(self) -> bool:
        return self._stopping

    async def run_cycle(self) -> list[Report]:
        """Run one reconciliation pass and return reports that advanced."""
        if self._stopping:
            return []

        async with self._cycle_lock:
            if self._stopping:
                return []

            unresolved = [report for report in self.store.list_active() if report.status != ReportStatus.RESOLVED]
            # Deleted and resolved reports are never fetched again.
            self.backoff.retain(report.id for report in unresolved)
            candidates = [report for report in unresolved if not self.backoff.is_blocked(report.id)]
            results = await asyncio.gather(*(self._reconcile(report) for report in candidates))
            updated = [report for report in results if report is not None]

        logger.info("reconcile_cycle_complete", checked=len(candidates), updated=len(updated))
        return updated

    async def stop(self) -> None:
        """Refuse new cycles and wait for in-flight work to settle."""
        self._stopping = True
        async with self._cycle_lock:
            pending = list(self._inflight)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("reconciler_stopped")

    async def _reconcile(self, report: Report) -> Report | None:
        async with self._semaphore:
            if self._stopping:
                return None
            structlog.contextvars.bind_contextvars(report_id=report.id, component="reconciler")
            try:
                return await self._reconcile_one(report)
            finally:
                structlog.contextvars.clear_contextvars()

    async def _reconcile_one(self, report: Report) -> Report | None:
        try:
            update = await asyncio.wait_for(
                self.status_feed.fetch_latest_status(report.id),
                timeout=self.fetch_timeout_seconds,
            )
        except Exception as exc:  # noqa: BLE001
            delay = self.backoff.record_failure(report.id)
            logger.warning(
                "status_fetch_failed",
                error=str(exc) or type(exc).__name__,
                failures=self.backoff.failure_count(report.id),
                retry_in_seconds=delay,
            )
            return None

        self.backoff.record_success(report.id)
        if update is None or status_rank(update.new_status) <= status_rank(report.status):
            return None

        try:
            return await self._apply(report.id, update)
        except (NotFoundError, InvalidTransitionError, ValidationError) as exc:
            # Deleted or advanced by someone else between fetch and apply.
            logger.info("status_update_skipped", reason=str(exc))
            return None

    async def _apply(self, report_id: str, update: StatusUpdate) -> Report:
        task = asyncio.ensure_future(self.store.add_status_update(report_id, update))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)
