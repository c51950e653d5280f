from __future__ import annotations

from datetime import datetime  # noqa: TCH003
from uuid import UUID, uuid4

from pydantic import ConfigDict, Field, field_validator

from .base import AppBaseModel, TimestampedModel, month_key, utcnow


class UserSettings(AppBaseModel):
    """Per-user preferences stored as a JSON bag."""

    # Unknown keys sent by older clients are ignored rather than rejected
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    auto_transcribe: bool = True
    email_notifications: bool = True
    daily_summary: bool = False
    notion_sync: bool = False
    language: str | None = Field(
        default=None,
        description="BCP-47 language code; None lets the speech API detect it",
    )
    timezone: str = "UTC"


class MonthlyUsage(AppBaseModel):
    notes: int = 0
    duration: int = 0


class UsageStats(AppBaseModel):
    """Cumulative usage counters with per-month rollups (keyed ``YYYY-MM``)."""

    total_notes: int = 0
    total_duration: int = 0
    last_activity: datetime | None = None
    monthly_usage: dict[str, MonthlyUsage] = Field(default_factory=dict)

    def record(self, *, notes: int, duration: int, at: datetime | None = None) -> UsageStats:
        """Return a copy with ``notes`` and ``duration`` seconds added."""
        when = at or utcnow()
        month = month_key(when)
        monthly = {k: v.model_copy() for k, v in self.monthly_usage.items()}
        bucket = monthly.get(month, MonthlyUsage())
        monthly[month] = MonthlyUsage(
            notes=bucket.notes + notes,
            duration=bucket.duration + duration,
        )
        return UsageStats(
            total_notes=self.total_notes + notes,
            total_duration=self.total_duration + duration,
            last_activity=when,
            monthly_usage=monthly,
        )


class NotionCredentials(AppBaseModel):
    api_key: str
    database_id: str
    database_name: str | None = None


class User(TimestampedModel):
    """User domain model."""

    id: UUID = Field(default_factory=uuid4, description="Unique user identifier")
    email: str = Field(..., max_length=320)
    password_hash: str | None = None
    name: str | None = Field(default=None, max_length=255)

    is_active: bool = True
    is_verified: bool = True
    verification_token: str | None = None
    reset_password_token: str | None = None
    reset_password_expires: datetime | None = None

    settings: UserSettings = Field(default_factory=UserSettings)
    usage: UsageStats = Field(default_factory=UsageStats)
    notion_credentials: NotionCredentials | None = None
    last_login_at: datetime | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        normalized = v.strip().lower()
        if "@" not in normalized:
            raise ValueError("Invalid email address")
        return normalized

    @property
    def notion_enabled(self) -> bool:
        return self.settings.notion_sync and self.notion_credentials is not None
