"""Report entity, status log, and attachment models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Return timezone-aware current UTC timestamp."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class ReportCategory(str, Enum):
    PHYSICAL = "physical"
    EMOTIONAL = "emotional"
    NEGLECT = "neglect"
    SEXUAL = "sexual"
    BULLYING = "bullying"
    OTHER = "other"


CATEGORY_DISPLAY_NAMES: dict[str, str] = {
    ReportCategory.PHYSICAL.value: "Physical Abuse",
    ReportCategory.EMOTIONAL.value: "Emotional Abuse",
    ReportCategory.NEGLECT.value: "Neglect",
    ReportCategory.SEXUAL.value: "Sexual Abuse",
    ReportCategory.BULLYING.value: "Bullying",
    ReportCategory.OTHER.value: "Other",
}


class ReportStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    RECEIVED = "received"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


_STATUS_RANK: dict[str, int] = {
    ReportStatus.DRAFT.value: 0,
    ReportStatus.SUBMITTED.value: 1,
    ReportStatus.RECEIVED.value: 2,
    ReportStatus.IN_PROGRESS.value: 3,
    ReportStatus.RESOLVED.value: 4,
}

STATUS_DISPLAY_NAMES: dict[str, str] = {
    ReportStatus.DRAFT.value: "Draft",
    ReportStatus.SUBMITTED.value: "Submitted",
    ReportStatus.RECEIVED.value: "Received",
    ReportStatus.IN_PROGRESS.value: "In Progress",
    ReportStatus.RESOLVED.value: "Resolved",
}

_STATUS_MESSAGES: dict[str, str] = {
    ReportStatus.DRAFT.value: "Report saved as draft.",
    ReportStatus.SUBMITTED.value: "Thank you for your report. It has been submitted successfully.",
    ReportStatus.RECEIVED.value: "Your report has been received and is under review by our team.",
    ReportStatus.IN_PROGRESS.value: (
        "Your report is now being handled by a case worker who will take appropriate action."
    ),
    ReportStatus.RESOLVED.value: "Your report has been resolved. Thank you for helping make a difference.",
}


def status_rank(status: ReportStatus | str) -> int:
    """Return the position of a status in the lifecycle total order."""
    return _STATUS_RANK[ReportStatus(status).value]


def status_message(status: ReportStatus | str) -> str:
    """Return the standard user-facing message for a status."""
    return _STATUS_MESSAGES[ReportStatus(status).value]


class AttachmentType(str, Enum):
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    DOCUMENT = "document"


class ActionType(str, Enum):
    ADDITIONAL_INFO = "additional_info"
    CONFIRMATION = "confirmation"
    CALLBACK = "callback"
    OTHER = "other"


class ContactMethod(str, Enum):
    NONE = "none"
    EMAIL = "email"
    PHONE = "phone"
    BOTH = "both"


class MediaAttachment(BaseModel):
    """Descriptor for a media file attached to a report."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=new_id)
    type: AttachmentType
    size: int | None = Field(default=None, ge=0)
    filename: str | None = None
    mime_type: str | None = None
    local_path: str | None = None

    @classmethod
    def from_mime_type(cls, mime_type: str, **kwargs) -> "MediaAttachment":
        """Build an attachment whose type is inferred from its MIME type."""
        lowered = mime_type.lower()
        if "image" in lowered:
            attachment_type = AttachmentType.IMAGE
        elif "audio" in lowered:
            attachment_type = AttachmentType.AUDIO
        elif "video" in lowered:
            attachment_type = AttachmentType.VIDEO
        else:
            attachment_type = AttachmentType.DOCUMENT
        return cls(type=attachment_type, mime_type=mime_type, **kwargs)


class LocationData(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    captured_at: datetime = Field(default_factory=utc_now)
    address: str | None = None
    place_name: str | None = None


class ContactInfo(BaseModel):
    """Optional contact details for non-anonymous reports."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True, str_strip_whitespace=True)

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    preferred_contact_method: ContactMethod = ContactMethod.NONE


class StatusUpdate(BaseModel):
    """One immutable lifecycle transition for a report."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True, frozen=True)

    id: str = Field(default_factory=new_id)
    timestamp: datetime = Field(default_factory=utc_now)
    old_status: ReportStatus
    new_status: ReportStatus
    message: str = ""
    action_required: bool = False
    action_type: ActionType | None = None
    agent_id: str | None = None


class Report(BaseModel):
    """A user-authored incident report and its ordered status history."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=utc_now)
    category: ReportCategory = ReportCategory.OTHER
    content: str = ""
    is_anonymous: bool = True
    contact_info: ContactInfo | None = None

    status: ReportStatus = ReportStatus.DRAFT
    status_history: list[StatusUpdate] = Field(default_factory=list)
    tracking_code: str | None = None

    attachments: list[MediaAttachment] = Field(default_factory=list)
    location: LocationData | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def latest_update(self) -> StatusUpdate | None:
        """Return the last appended status update, if any."""
        return self.status_history[-1] if self.status_history else None

    @property
    def is_draft(self) -> bool:
        return self.status == ReportStatus.DRAFT

    def apply_status_update(self, update: StatusUpdate) -> None:
        """Append a status update and move current status to its new status."""
        self.status_history.append(update)
        self.status = update.new_status
