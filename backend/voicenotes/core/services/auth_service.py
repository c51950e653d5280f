from __future__ import annotations

import asyncio
import secrets
from datetime import timedelta
from typing import TYPE_CHECKING, Any
from uuid import UUID

import bcrypt
import jwt

from voicenotes.core.errors import AuthenticationError, EmailDeliveryError, InactiveAccountError
from voicenotes.core.models.base import utcnow
from voicenotes.core.models.user import NotionCredentials, User, UserSettings
from voicenotes.core.schemas.auth import AuthUser
from voicenotes.utils.logging import get_logger
from voicenotes.utils.validation import validate_password_strength

if TYPE_CHECKING:
    from voicenotes.core.repositories.user_repository import UserRepository
    from voicenotes.core.services.email_service import EmailService
    from voicenotes.core.services.notion_service import NotionService

logger = get_logger(__name__)

RESET_REQUESTED_MESSAGE = "If the email exists, a reset link has been sent."


class TokenService:
    """Issue and validate HS256 access tokens."""

    def __init__(self, secret: str, *, algorithm: str = "HS256", expires_in: int = 7 * 24 * 3600) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._expires_in = expires_in

    @property
    def expires_in(self) -> int:
        return self._expires_in

    def issue(self, user: User) -> str:
        now = utcnow()
        payload = {
            "sub": str(user.id),
            "email": user.email,
            "iat": now,
            "exp": now + timedelta(seconds=self._expires_in),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def decode(self, token: str) -> AuthUser:
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError as err:
            raise AuthenticationError("Token has expired") from err
        except jwt.InvalidTokenError as err:
            raise AuthenticationError("Invalid token") from err

        try:
            return AuthUser(id=UUID(claims["sub"]), email=claims.get("email", ""))
        except (ValueError, TypeError) as err:
            raise AuthenticationError("Invalid token subject") from err


def hash_password(password: str, rounds: int = 10) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds)).decode()


def check_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        return False


class AuthService:
    """Authentication service handling business logic for auth operations."""

    def __init__(
        self,
        users: UserRepository,
        tokens: TokenService,
        *,
        email: EmailService,
        notion: NotionService,
        bcrypt_rounds: int = 10,
        reset_ttl: int = 3600,
    ) -> None:
        self._users = users
        self._tokens = tokens
        self._email = email
        self._notion = notion
        self._bcrypt_rounds = bcrypt_rounds
        self._reset_ttl = reset_ttl

    @property
    def token_lifetime(self) -> int:
        return self._tokens.expires_in

    async def _hash(self, password: str) -> str:
        return await asyncio.to_thread(hash_password, password, self._bcrypt_rounds)

    async def register(self, email: str, password: str, name: str | None = None) -> tuple[User, str]:
        """Create an active account, or claim one auto-provisioned from an inbound email."""
        is_valid_password, password_error = validate_password_strength(password)
        if not is_valid_password:
            raise ValueError(password_error)

        email = email.lower().strip()
        password_hash = await self._hash(password)
        existing = await self._users.get_by_email(email)

        if existing is not None:
            if existing.password_hash:
                raise ValueError("Email already registered")
            user = await self._users.update_fields(
                existing.id,
                {
                    "password_hash": password_hash,
                    "name": name or existing.name,
                    "is_active": True,
                    "is_verified": True,
                    "verification_token": None,
                },
            )
            if user is None:
                raise LookupError("User not found")
            logger.info("Auto-provisioned account claimed", extra={"user_id": str(user.id)})
        else:
            user = await self._users.create(
                User(email=email, password_hash=password_hash, name=name, is_active=True, is_verified=True)
            )
            logger.info("User registered", extra={"user_id": str(user.id)})

        return user, self._tokens.issue(user)

    async def login(self, email: str, password: str) -> tuple[User, str]:
        email = email.lower().strip()
        user = await self._users.get_by_email(email)
        if user is None or not await asyncio.to_thread(check_password, password, user.password_hash):
            logger.warning("Login failed", extra={"email": email})
            raise AuthenticationError("Invalid credentials")
        if not user.is_active:
            raise InactiveAccountError("Account not activated. Please check your email.")

        user = await self._users.update_fields(user.id, {"last_login_at": utcnow()}) or user
        logger.info("User logged in", extra={"user_id": str(user.id)})
        return user, self._tokens.issue(user)

    async def authenticate(self, token: str) -> User:
        """Resolve a bearer token to an existing user."""
        claims = self._tokens.decode(token)
        user = await self._users.get(claims.id)
        if user is None:
            raise AuthenticationError("User no longer exists")
        return user

    async def verify_email(self, token: str) -> User:
        user = await self._users.get_by_verification_token(token)
        if user is None:
            raise ValueError("Invalid verification token")
        updated = await self._users.update_fields(
            user.id, {"is_active": True, "is_verified": True, "verification_token": None}
        )
        logger.info("Email verified", extra={"user_id": str(user.id)})
        return updated or user

    async def request_password_reset(self, email: str) -> str:
        """Issue a one-hour reset token; the reply never reveals whether the account exists."""
        user = await self._users.get_by_email(email.lower().strip())
        if user is None:
            return RESET_REQUESTED_MESSAGE

        token = secrets.token_urlsafe(32)
        await self._users.update_fields(
            user.id,
            {
                "reset_password_token": token,
                "reset_password_expires": utcnow() + timedelta(seconds=self._reset_ttl),
            },
        )
        try:
            await self._email.send_password_reset(user.email, token)
        except EmailDeliveryError as err:
            logger.error("Failed to send password reset email", extra={"user_id": str(user.id), "error": str(err)})
        return RESET_REQUESTED_MESSAGE

    async def reset_password(self, token: str, password: str) -> None:
        user = await self._users.get_by_reset_token(token)
        if user is None or not user.reset_password_expires or user.reset_password_expires < utcnow():
            raise ValueError("Invalid or expired reset token")

        is_valid_password, password_error = validate_password_strength(password)
        if not is_valid_password:
            raise ValueError(password_error)

        await self._users.update_fields(
            user.id,
            {
                "password_hash": await self._hash(password),
                "reset_password_token": None,
                "reset_password_expires": None,
            },
        )
        logger.info("Password reset", extra={"user_id": str(user.id)})

    async def update_settings(self, user: User, changes: dict[str, Any]) -> UserSettings:
        """Shallow-merge ``changes`` into the user's settings."""
        merged = UserSettings.model_validate({**user.settings.model_dump(), **changes})
        updated = await self._users.update_fields(user.id, {"settings": merged})
        return updated.settings if updated else merged

    async def configure_notion(self, user: User, api_key: str, database_id: str) -> User:
        verification = await self._notion.verify_integration(api_key, database_id)
        if not verification.valid:
            raise ValueError(verification.error or "Notion verification failed")

        credentials = NotionCredentials(
            api_key=api_key,
            database_id=database_id,
            database_name=verification.database_name,
        )
        settings = user.settings.model_copy(update={"notion_sync": True})
        updated = await self._users.update_fields(
            user.id, {"notion_credentials": credentials, "settings": settings}
        )
        logger.info("Notion integration configured", extra={"user_id": str(user.id)})
        return updated or user
