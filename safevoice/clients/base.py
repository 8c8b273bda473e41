"""Collaborator contracts for report submission and remote status lookups."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from safevoice.models.report import Report, StatusUpdate


@dataclass(frozen=True)
class SubmissionReceipt:
    """Outcome of a successful remote submission."""

    id: str
    tracking_code: str | None = None
    status: str = "submitted"
    message: str | None = None


@dataclass(frozen=True)
class AttachmentData:
    """Raw attachment bytes uploaded alongside a report."""

    data: bytes
    filename: str
    mime_type: str


class ReportSubmitter(Protocol):
    """Deliver a report to the remote reporting service.

    Implementations raise ``SubmitError`` on transport or server failure.
    """

    async def submit_report(self, report: Report, attachments: list[AttachmentData]) -> SubmissionReceipt: ...


class StatusFeed(Protocol):
    """Remote source of report status changes."""

    async def fetch_latest_status(self, report_id: str) -> StatusUpdate | None: ...
