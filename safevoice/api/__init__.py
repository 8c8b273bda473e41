"""FastAPI route modules."""

from safevoice.api import health, notifications, reports

__all__ = ["health", "notifications", "reports"]
