from __future__ import annotations

from datetime import datetime  # noqa: TCH003
from uuid import UUID  # noqa: TCH003

from pydantic import EmailStr, Field

from voicenotes.api.v1.schemas.common import ApiModel
from voicenotes.core.models.user import User  # noqa: TCH001


class RegisterRequest(ApiModel):
    """Request to register with email and password."""

    email: EmailStr = Field(..., description="User's email address")
    password: str = Field(..., min_length=1, description="User's password")
    name: str | None = Field(default=None, max_length=255)


class LoginRequest(ApiModel):
    email: EmailStr = Field(..., description="User's email address")
    password: str = Field(..., min_length=1, description="User's password")


class ForgotPasswordRequest(ApiModel):
    email: EmailStr


class ResetPasswordRequest(ApiModel):
    password: str = Field(..., min_length=1)


class UserSettingsPayload(ApiModel):
    auto_transcribe: bool = True
    email_notifications: bool = True
    daily_summary: bool = False
    notion_sync: bool = False
    language: str | None = None
    timezone: str = "UTC"


class SettingsPatch(ApiModel):
    """Partial settings; only the keys sent are merged."""

    auto_transcribe: bool | None = None
    email_notifications: bool | None = None
    daily_summary: bool | None = None
    notion_sync: bool | None = None
    language: str | None = None
    timezone: str | None = None


class SettingsUpdateRequest(ApiModel):
    settings: SettingsPatch


class SettingsResponse(ApiModel):
    message: str = "Settings updated"
    settings: UserSettingsPayload


class MonthlyUsagePayload(ApiModel):
    notes: int = 0
    duration: int = 0


class UsagePayload(ApiModel):
    total_notes: int = 0
    total_duration: int = 0
    last_activity: datetime | None = None
    monthly_usage: dict[str, MonthlyUsagePayload] = Field(default_factory=dict)


class UserResponse(ApiModel):
    """Public view of a user; never carries secrets or tokens."""

    id: UUID
    email: str
    name: str | None = None
    is_active: bool
    is_verified: bool
    settings: UserSettingsPayload
    usage: UsagePayload
    notion_configured: bool = False
    notion_database_name: str | None = None
    last_login_at: datetime | None = None
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> UserResponse:
        credentials = user.notion_credentials
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            is_active=user.is_active,
            is_verified=user.is_verified,
            settings=UserSettingsPayload.model_validate(user.settings.model_dump()),
            usage=UsagePayload.model_validate(user.usage.model_dump()),
            notion_configured=credentials is not None,
            notion_database_name=credentials.database_name if credentials else None,
            last_login_at=user.last_login_at,
            created_at=user.created_at,
        )


class AuthResponse(ApiModel):
    """Access token plus the authenticated user."""

    message: str | None = None
    token: str = Field(..., description="JWT access token for API calls")
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Token expiration time in seconds")
    user: UserResponse


class NotionConfigRequest(ApiModel):
    api_key: str = Field(..., min_length=1)
    database_id: str = Field(..., min_length=1)


class NotionConfigResponse(ApiModel):
    message: str = "Notion integration configured"
    database_name: str | None = None
