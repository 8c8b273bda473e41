"""External collaborator clients."""

from safevoice.clients.base import AttachmentData, ReportSubmitter, StatusFeed, SubmissionReceipt
from safevoice.clients.status_feed import HttpStatusFeed
from safevoice.clients.submission import HttpReportSubmitter

__all__ = [
    "AttachmentData",
    "HttpReportSubmitter",
    "HttpStatusFeed",
    "ReportSubmitter",
    "StatusFeed",
    "SubmissionReceipt",
]
