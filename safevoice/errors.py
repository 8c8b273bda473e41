"""Domain errors raised by the report lifecycle core."""

from __future__ import annotations


class ReportLifecycleError(Exception):
    """Base class for report lifecycle failures."""


class ValidationError(ReportLifecycleError):
    """Operation is not valid for the report's current state."""


class NotFoundError(ReportLifecycleError):
    """No report exists for the given id."""

    def __init__(self, report_id: str, message: str | None = None):
        self.report_id = report_id
        super().__init__(message or f"Report '{report_id}' not found")


class InvalidTransitionError(ReportLifecycleError):
    """A status update would move a report backwards."""

    def __init__(self, report_id: str, current: str, requested: str):
        self.report_id = report_id
        self.current = current
        self.requested = requested
        super().__init__(f"Report '{report_id}' cannot move from '{current}' to '{requested}'")


class SubmitError(ReportLifecycleError):
    """The external submission collaborator failed."""

    def __init__(self, message: str, *, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class PersistenceError(ReportLifecycleError):
    """Local serialization or write failed."""

    def __init__(self, key: str, cause: Exception):
        self.key = key
        self.cause = cause
        super().__init__(f"Failed to persist '{key}': {cause}")
