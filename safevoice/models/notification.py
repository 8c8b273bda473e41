"""In-app notification models and alert timing variants."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

DISGUISED_TITLE = "Calendar Reminder"
DISGUISED_BODY = "You have an upcoming reminder to check."


def utc_now() -> datetime:
    """Return timezone-aware current UTC timestamp."""
    return datetime.now(timezone.utc)


class NotificationType(str, Enum):
    REPORT_UPDATE = "report_update"
    DRAFT_REMINDER = "draft_reminder"
    CHECK_IN = "check_in"
    ACTION_REQUIRED = "action_required"
    APP_UPDATE = "app_update"
    SECURITY_ALERT = "security_alert"


class ImmediateTiming(BaseModel):
    kind: Literal["immediate"] = "immediate"


class DelayedTiming(BaseModel):
    kind: Literal["delayed"] = "delayed"
    seconds: int = Field(ge=0)


class ScheduledTiming(BaseModel):
    kind: Literal["scheduled"] = "scheduled"
    fire_at: datetime


NotificationTiming = Annotated[
    ImmediateTiming | DelayedTiming | ScheduledTiming,
    Field(discriminator="kind"),
]


class Notification(BaseModel):
    """A user-facing notification owned by the notification inbox."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str
    body: str
    type: NotificationType
    timing: NotificationTiming = Field(default_factory=ImmediateTiming)
    created_at: datetime = Field(default_factory=utc_now)
    reference_id: str | None = None
    is_read: bool = False
    read_at: datetime | None = None
    disguised: bool = False

    @property
    def display_title(self) -> str:
        return DISGUISED_TITLE if self.disguised else self.title

    @property
    def display_body(self) -> str:
        return DISGUISED_BODY if self.disguised else self.body

    def mark_read(self, when: datetime | None = None) -> None:
        self.is_read = True
        self.read_at = when or utc_now()
