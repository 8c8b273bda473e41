"""Report store: single source of truth for draft and active reports."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from safevoice.clients.base import AttachmentData, ReportSubmitter
from safevoice.errors import (
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    SubmitError,
    ValidationError,
)
from safevoice.models.report import (
    MediaAttachment,
    Report,
    ReportCategory,
    ReportStatus,
    StatusUpdate,
    new_id,
    status_message,
    status_rank,
    utc_now,
)
from safevoice.repositories.base import ACTIVE_REPORTS_KEY, DRAFT_REPORTS_KEY, KeyValueStore

logger = structlog.get_logger(__name__)

StatusListener = Callable[[Report, StatusUpdate], Awaitable[Any]]
PersistenceErrorHandler = Callable[[PersistenceError], None]


def generate_tracking_code(report_id: str) -> str:
    """Return a human-friendly tracking code; uniqueness is best effort only."""
    return f"{report_id[:4].upper()}-{random.randint(10000, 99999):05d}"


def _check_submittable(report: Report) -> bool:
    """Return True for drafts; raise unless the report may enter the active collection."""
    status = ReportStatus(report.status)
    if status == ReportStatus.DRAFT:
        return True
    if status != ReportStatus.SUBMITTED:
        raise ValidationError(f"Only draft or submitted reports can be submitted, not '{status.value}'")
    latest = report.latest_update
    if latest is not None and ReportStatus(latest.new_status) != ReportStatus.SUBMITTED:
        raise ValidationError("Status history of a submitted report must end in 'submitted'")
    return False


class ReportStore:
    """Own drafts and active reports, partitioned so an id lives in one collection.

    All mutations and their persistence writes are serialized by one lock.
    Persistence is best effort: write failures are logged and reported via
    ``on_persistence_error`` but never roll back the in-memory state.
    """

    def __init__(
        self,
        state_store: KeyValueStore,
        submitter: ReportSubmitter,
        *,
        on_persistence_error: PersistenceErrorHandler | None = None,
        tracking_code_fn: Callable[[str], str] = generate_tracking_code,
    ):
        self.state_store = state_store
        self.submitter = submitter
        self.on_persistence_error = on_persistence_error
        self.tracking_code_fn = tracking_code_fn
        self._drafts: dict[str, Report] = {}
        self._active: dict[str, Report] = {}
        self._lock = asyncio.Lock()
        self._submitting: set[str] = set()
        self._cancelled_submissions: set[str] = set()
        self._listeners: list[StatusListener] = []

    def subscribe(self, listener: StatusListener) -> None:
        """Register a coroutine called after every committed status update."""
        self._listeners.append(listener)

    async def load(self) -> None:
        """Read both collections from durable storage."""
        async with self._lock:
            self._active = await self._load_collection(ACTIVE_REPORTS_KEY)
            drafts = await self._load_collection(DRAFT_REPORTS_KEY)
            # An id that reached the active collection never returns to drafts.
            self._drafts = {report_id: report for report_id, report in drafts.items() if report_id not in self._active}
        logger.info("report_store_loaded", active=len(self._active), drafts=len(self._drafts))

    async def create_draft(
        self,
        category: ReportCategory | str = ReportCategory.OTHER,
        content: str = "",
        is_anonymous: bool = True,
    ) -> Report:
        """Create and persist a new draft."""
        report = Report(category=category, content=content, is_anonymous=is_anonymous)
        async with self._lock:
            self._drafts[report.id] = report
            await self._persist(DRAFT_REPORTS_KEY)
            snapshot = report.model_copy(deep=True)
        logger.info("draft_created", report_id=report.id, category=ReportCategory(report.category).value)
        return snapshot

    async def save_draft(self, report: Report) -> Report:
        """Upsert a report into drafts, forcing draft status."""
        draft = report.model_copy(deep=True)
        if not draft.id:
            draft.id = new_id()
            draft.created_at = utc_now()

        async with self._lock:
            if draft.id in self._active:
                raise ValidationError(f"Report '{draft.id}' was already submitted and cannot return to drafts")
            if draft.id in self._submitting:
                raise ValidationError(f"Report '{draft.id}' is being submitted")

            existing = self._drafts.get(draft.id)
            if existing is not None:
                draft.created_at = existing.created_at
            draft.status = ReportStatus.DRAFT.value
            draft.tracking_code = None
            draft.status_history = []
            self._drafts[draft.id] = draft
            await self._persist(DRAFT_REPORTS_KEY)
            snapshot = draft.model_copy(deep=True)
        logger.info("draft_saved", report_id=draft.id)
        return snapshot

    async def submit(self, report: Report, attachments: list[AttachmentData] | None = None) -> Report:
        """Submit a report through the remote collaborator and move it to active.

        Only drafts and reports already marked submitted are accepted. The
        collaborator is awaited outside the store lock. On resume the report
        must still exist (and still be a draft when it started as one); a
        failed submission leaves the store untouched.
        """
        candidate = report.model_copy(deep=True)
        if not candidate.content.strip():
            raise ValidationError("Report content must not be empty when submitting")
        started_as_draft = _check_submittable(candidate)

        async with self._lock:
            if not candidate.id:
                candidate.id = new_id()
                candidate.created_at = utc_now()
            report_id = candidate.id
            if report_id in self._active:
                raise ValidationError(f"Report '{report_id}' was already submitted")
            if report_id in self._submitting:
                raise ValidationError(f"Report '{report_id}' is already being submitted")

            stored_draft = self._drafts.get(report_id)
            was_stored_draft = stored_draft is not None
            if stored_draft is not None:
                candidate.created_at = stored_draft.created_at
            self._submitting.add(report_id)

        structlog.contextvars.bind_contextvars(report_id=report_id, component="report_store")
        if started_as_draft:
            candidate.status = ReportStatus.SUBMITTED.value
            candidate.status_history = []
        candidate.tracking_code = None

        try:
            try:
                receipt = await self.submitter.submit_report(candidate, list(attachments or []))
            except SubmitError as exc:
                logger.warning("report_submission_failed", error=str(exc))
                raise
            except Exception as exc:  # noqa: BLE001
                logger.warning("report_submission_failed", error=str(exc))
                raise SubmitError(f"Submission failed: {exc}") from exc

            async with self._lock:
                if report_id in self._cancelled_submissions or (
                    was_stored_draft and report_id not in self._drafts
                ):
                    logger.warning("report_deleted_during_submission")
                    raise NotFoundError(report_id, f"Report '{report_id}' was deleted during submission")

                candidate.tracking_code = receipt.tracking_code or self.tracking_code_fn(report_id)
                if receipt.id and receipt.id != report_id:
                    candidate.metadata["remote_id"] = receipt.id
                if started_as_draft:
                    candidate.apply_status_update(
                        StatusUpdate(
                            old_status=ReportStatus.DRAFT,
                            new_status=ReportStatus.SUBMITTED,
                            message=receipt.message or status_message(ReportStatus.SUBMITTED),
                        )
                    )

                self._drafts.pop(report_id, None)
                self._active[report_id] = candidate
                await self._persist(ACTIVE_REPORTS_KEY, DRAFT_REPORTS_KEY)
                snapshot = candidate.model_copy(deep=True)

            logger.info("report_submitted", tracking_code=snapshot.tracking_code)
            return snapshot
        finally:
            self._submitting.discard(report_id)
            self._cancelled_submissions.discard(report_id)
            structlog.contextvars.clear_contextvars()

    async def add_status_update(self, report_id: str, update: StatusUpdate) -> Report:
        """Append a forward status transition to an active report."""
        structlog.contextvars.bind_contextvars(report_id=report_id, component="report_store")
        try:
            async with self._lock:
                report = self._active.get(report_id)
                if report is None:
                    if report_id in self._drafts:
                        raise ValidationError(f"Report '{report_id}' is a draft; submit it before updating status")
                    raise NotFoundError(report_id)

                current = ReportStatus(report.status)
                requested = ReportStatus(update.new_status)
                if requested == ReportStatus.DRAFT or status_rank(requested) < status_rank(current):
                    raise InvalidTransitionError(report_id, current.value, requested.value)

                recorded = update.model_copy(update={"old_status": current.value})
                report.apply_status_update(recorded)
                await self._persist(ACTIVE_REPORTS_KEY)
                snapshot = report.model_copy(deep=True)

            logger.info(
                "report_status_updated",
                old_status=current.value,
                new_status=requested.value,
                action_required=recorded.action_required,
            )
            await self._notify_listeners(snapshot, recorded)
            return snapshot
        finally:
            structlog.contextvars.clear_contextvars()

    async def delete_report(self, report_id: str) -> None:
        """Remove a report from whichever collection holds it; unknown ids are ignored."""
        async with self._lock:
            if report_id in self._submitting:
                self._cancelled_submissions.add(report_id)

            removed_active = self._active.pop(report_id, None)
            removed_draft = self._drafts.pop(report_id, None)
            if removed_active is None and removed_draft is None:
                logger.debug("report_delete_noop", report_id=report_id)
                return

            keys = [ACTIVE_REPORTS_KEY] if removed_active is not None else []
            if removed_draft is not None:
                keys.append(DRAFT_REPORTS_KEY)
            await self._persist(*keys)
        logger.info("report_deleted", report_id=report_id)

    async def add_attachment(self, report_id: str, attachment: MediaAttachment) -> Report:
        """Attach a media descriptor to a draft or active report."""
        async with self._lock:
            report, key = self._locate(report_id)
            if any(item.id == attachment.id for item in report.attachments):
                raise ValidationError(f"Attachment '{attachment.id}' already exists on report '{report_id}'")
            report.attachments.append(attachment.model_copy(deep=True))
            await self._persist(key)
            return report.model_copy(deep=True)

    async def remove_attachment(self, report_id: str, attachment_id: str) -> Report:
        """Detach a media descriptor; unknown attachment ids raise ``NotFoundError``."""
        async with self._lock:
            report, key = self._locate(report_id)
            remaining = [item for item in report.attachments if item.id != attachment_id]
            if len(remaining) == len(report.attachments):
                raise NotFoundError(report_id, f"Attachment '{attachment_id}' not found on report '{report_id}'")
            report.attachments = remaining
            await self._persist(key)
            return report.model_copy(deep=True)

    async def clear_all(self) -> None:
        """Wipe every report (privacy reset)."""
        async with self._lock:
            self._cancelled_submissions.update(self._submitting)
            self._active.clear()
            self._drafts.clear()
            await self._persist(ACTIVE_REPORTS_KEY, DRAFT_REPORTS_KEY)
        logger.info("report_store_cleared")

    def get_report(self, report_id: str) -> Report | None:
        """Return a copy of the report, checking active before drafts."""
        report = self._active.get(report_id) or self._drafts.get(report_id)
        return report.model_copy(deep=True) if report is not None else None

    def list_active(self) -> list[Report]:
        return [report.model_copy(deep=True) for report in self._active.values()]

    def list_drafts(self) -> list[Report]:
        return [report.model_copy(deep=True) for report in self._drafts.values()]

    def _locate(self, report_id: str) -> tuple[Report, str]:
        if report_id in self._active:
            return self._active[report_id], ACTIVE_REPORTS_KEY
        if report_id in self._drafts:
            return self._drafts[report_id], DRAFT_REPORTS_KEY
        raise NotFoundError(report_id)

    async def _notify_listeners(self, report: Report, update: StatusUpdate) -> None:
        for listener in self._listeners:
            try:
                await listener(report.model_copy(deep=True), update)
            except Exception as exc:  # noqa: BLE001
                logger.exception("status_listener_failed", report_id=report.id, error=str(exc))

    async def _persist(self, *keys: str) -> None:
        for key in keys:
            collection = self._active if key == ACTIVE_REPORTS_KEY else self._drafts
            try:
                payload = [report.model_dump(mode="json") for report in collection.values()]
                await self.state_store.save(key, payload)
            except Exception as exc:  # noqa: BLE001
                self._report_persistence_error(PersistenceError(key, exc))

    async def _load_collection(self, key: str) -> dict[str, Report]:
        try:
            rows = await self.state_store.load(key)
        except Exception as exc:  # noqa: BLE001
            self._report_persistence_error(PersistenceError(key, exc))
            return {}

        loaded: dict[str, Report] = {}
        for row in rows or []:
            try:
                report = Report.model_validate(row)
            except ValueError as exc:
                logger.warning("stored_report_invalid", key=key, error=str(exc))
                continue
            loaded[report.id] = report
        return loaded

    def _report_persistence_error(self, error: PersistenceError) -> None:
        logger.error("report_persistence_failed", key=error.key, error=str(error.cause))
        if self.on_persistence_error is not None:
            self.on_persistence_error(error)
