"""Application configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strongly typed settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SAFEVOICE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Data store
    mongodb_uri: str
    mongodb_database: str = "safevoice"

    # Remote reporting service
    submission_api_url: str
    submission_timeout_seconds: int = 30
    submission_retry_attempts: int = 3
    status_api_url: str | None = None

    # Status reconciliation
    reconcile_enabled: bool = True
    reconcile_interval_seconds: int = 600
    status_fetch_timeout_seconds: int = 15
    reconcile_max_concurrency: int = 5
    reconcile_backoff_base_seconds: int = 600
    reconcile_backoff_cap_seconds: int = 21600

    # Notifications
    notification_dedup_window_seconds: int = 60
    draft_reminder_delay_hours: int = 24
    check_in_delay_hours: int = 48
    disguise_notifications: bool = False
    notification_timezone: str = "UTC"
    notification_webhook_url: str | None = None
    notification_timeout_seconds: int = 10

    # File-based configs
    logging_config_path: Path = Path("config/logging.yaml")

    @model_validator(mode="after")
    def validate_runtime_configuration(self) -> "Settings":
        """Validate cross-field configuration constraints."""
        positive_fields = (
            "submission_timeout_seconds",
            "submission_retry_attempts",
            "reconcile_interval_seconds",
            "status_fetch_timeout_seconds",
            "reconcile_max_concurrency",
            "reconcile_backoff_base_seconds",
            "reconcile_backoff_cap_seconds",
            "draft_reminder_delay_hours",
            "check_in_delay_hours",
            "notification_timeout_seconds",
        )
        for field_name in positive_fields:
            if getattr(self, field_name) <= 0:
                raise ValueError(f"SAFEVOICE_{field_name.upper()} must be > 0")

        if self.notification_dedup_window_seconds < 0:
            raise ValueError("SAFEVOICE_NOTIFICATION_DEDUP_WINDOW_SECONDS must be >= 0")

        if self.reconcile_backoff_cap_seconds < self.reconcile_backoff_base_seconds:
            raise ValueError(
                "SAFEVOICE_RECONCILE_BACKOFF_CAP_SECONDS must be >= SAFEVOICE_RECONCILE_BACKOFF_BASE_SECONDS"
            )

        if self.reconcile_enabled and not self.status_api_url:
            raise ValueError("SAFEVOICE_STATUS_API_URL is required when SAFEVOICE_RECONCILE_ENABLED=true")

        try:
            ZoneInfo(self.notification_timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown SAFEVOICE_NOTIFICATION_TIMEZONE: {self.notification_timezone}") from exc

        return self


def load_logging_config(path: str | Path) -> dict[str, Any] | None:
    """Load a ``logging.config.dictConfig`` mapping from YAML, if the file exists."""
    config_path = Path(path)
    if not config_path.exists():
        return None

    with config_path.open("r", encoding="utf-8") as handle:
        parsed = yaml.safe_load(handle)

    if parsed is None:
        return None

    if not isinstance(parsed, dict):
        raise ValueError(f"YAML config must be a mapping: {config_path}")

    return parsed


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""
    return Settings()
