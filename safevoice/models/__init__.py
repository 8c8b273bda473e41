"""Shared data models for SafeVoice."""

from safevoice.models.notification import (
    DelayedTiming,
    ImmediateTiming,
    Notification,
    NotificationTiming,
    NotificationType,
    ScheduledTiming,
)
from safevoice.models.report import (
    ActionType,
    AttachmentType,
    ContactInfo,
    ContactMethod,
    LocationData,
    MediaAttachment,
    Report,
    ReportCategory,
    ReportStatus,
    StatusUpdate,
    status_message,
    status_rank,
)

__all__ = [
    "ActionType",
    "AttachmentType",
    "ContactInfo",
    "ContactMethod",
    "DelayedTiming",
    "ImmediateTiming",
    "LocationData",
    "MediaAttachment",
    "Notification",
    "NotificationTiming",
    "NotificationType",
    "Report",
    "ReportCategory",
    "ReportStatus",
    "ScheduledTiming",
    "StatusUpdate",
    "status_message",
    "status_rank",
]
