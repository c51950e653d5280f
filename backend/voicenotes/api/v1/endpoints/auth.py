from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, HTTPException, Request, status

from voicenotes.api.v1.schemas.auth import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    NotionConfigRequest,
    NotionConfigResponse,
    RegisterRequest,
    ResetPasswordRequest,
    SettingsResponse,
    SettingsUpdateRequest,
    UserResponse,
    UserSettingsPayload,
)
from voicenotes.api.v1.schemas.common import MessageResponse
from voicenotes.core.errors import AuthenticationError, InactiveAccountError
from voicenotes.dependencies import get_auth_service, get_current_user, rate_limit_by_ip
from voicenotes.utils.logging import get_logger

if TYPE_CHECKING:
    from voicenotes.core.models.user import User
    from voicenotes.core.services.auth_service import AuthService

logger = get_logger(__name__)

# Configure router with authentication-specific settings
router = APIRouter(
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        429: {"description": "Too many requests"},
    }
)


def _auth_response(user: User, token: str, auth_service: AuthService, message: str | None = None) -> AuthResponse:
    return AuthResponse(
        message=message,
        token=token,
        expires_in=auth_service.token_lifetime,
        user=UserResponse.from_user(user),
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: Request,
    payload: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Register with email and password."""
    rate_limit_by_ip(request, "register")
    try:
        user, token = await auth_service.register(payload.email, payload.password, payload.name)
        return _auth_response(user, token, auth_service, "Registration successful")
    except HTTPException:
        raise
    except ValueError as err:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(err)) from err
    except Exception as err:
        logger.error("Unexpected error during registration", extra={"error": str(err)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Registration failed",
        ) from err


@router.post("/login", response_model=AuthResponse)
async def login(
    request: Request,
    payload: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Log in with email and password."""
    rate_limit_by_ip(request, "login")
    try:
        user, token = await auth_service.login(payload.email, payload.password)
        return _auth_response(user, token, auth_service)
    except InactiveAccountError as err:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(err)) from err
    except AuthenticationError as err:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(err)) from err
    except Exception as err:
        logger.error("Unexpected error during login", extra={"error": str(err)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Login failed",
        ) from err


@router.get("/verify-email/{token}", response_model=MessageResponse)
async def verify_email(token: str, auth_service: AuthService = Depends(get_auth_service)):
    try:
        await auth_service.verify_email(token)
    except ValueError as err:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(err)) from err
    return MessageResponse(message="Email verified successfully")


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    request: Request,
    payload: ForgotPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    rate_limit_by_ip(request, "forgot-password")
    message = await auth_service.request_password_reset(payload.email)
    return MessageResponse(message=message)


@router.post("/reset-password/{token}", response_model=MessageResponse)
async def reset_password(
    request: Request,
    token: str,
    payload: ResetPasswordRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    rate_limit_by_ip(request, "reset-password")
    try:
        await auth_service.reset_password(token, payload.password)
    except ValueError as err:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(err)) from err
    return MessageResponse(message="Password reset successful")


@router.get("/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)):
    """Return the authenticated user's profile."""
    return UserResponse.from_user(current_user)


@router.put("/settings", response_model=SettingsResponse)
async def update_settings(
    payload: SettingsUpdateRequest,
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
):
    changes = payload.settings.model_dump(exclude_unset=True)
    settings = await auth_service.update_settings(current_user, changes)
    return SettingsResponse(settings=UserSettingsPayload.model_validate(settings.model_dump()))


@router.post("/notion", response_model=NotionConfigResponse)
async def configure_notion(
    payload: NotionConfigRequest,
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Verify and store the user's Notion integration credentials."""
    try:
        user = await auth_service.configure_notion(current_user, payload.api_key, payload.database_id)
    except ValueError as err:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(err)) from err
    credentials = user.notion_credentials
    return NotionConfigResponse(database_name=credentials.database_name if credentials else None)
