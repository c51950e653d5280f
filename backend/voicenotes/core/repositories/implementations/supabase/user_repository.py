from __future__ import annotations

from typing import TYPE_CHECKING, Any

from voicenotes.core.models.base import utcnow
from voicenotes.core.models.user import User
from voicenotes.core.repositories.user_repository import UserRepository

from ._support import first, run, to_row_changes

if TYPE_CHECKING:
    from uuid import UUID

    from supabase import Client


class SupabaseUserRepository(UserRepository):
    """Supabase implementation of the UserRepository backed by a `users` table."""

    TABLE_NAME = "users"

    def __init__(self, client: Client) -> None:
        self._client: Client = client

    async def create(self, user: User) -> User:
        row = user.to_row()
        resp = await run(lambda: self._client.table(self.TABLE_NAME).insert(row).execute())
        return self._row_to_user(first(resp.data))

    async def get(self, user_id: UUID) -> User | None:
        return await self._get_one("id", str(user_id))

    async def get_by_email(self, email: str) -> User | None:
        return await self._get_one("email", email.strip().lower())

    async def get_by_verification_token(self, token: str) -> User | None:
        return await self._get_one("verification_token", token)

    async def get_by_reset_token(self, token: str) -> User | None:
        return await self._get_one("reset_password_token", token)

    async def update_fields(self, user_id: UUID, changes: dict[str, Any]) -> User | None:
        sanitized = to_row_changes(changes)
        if not sanitized:
            return await self.get(user_id)
        sanitized["updated_at"] = utcnow().isoformat()

        resp = await run(
            lambda: self._client.table(self.TABLE_NAME)
            .update(sanitized)
            .eq("id", str(user_id))
            .execute()
        )
        items = resp.data or []
        if not items:
            return None
        return self._row_to_user(items[0])

    async def _get_one(self, column: str, value: str) -> User | None:
        resp = await run(
            lambda: self._client.table(self.TABLE_NAME)
            .select("*")
            .eq(column, value)
            .limit(1)
            .execute()
        )
        items = resp.data or []
        if not items:
            return None
        return self._row_to_user(items[0])

    @staticmethod
    def _row_to_user(row: dict[str, Any]) -> User:
        normalized = dict(row)
        # JSON columns are nullable in older rows
        for column in ("settings", "usage"):
            if normalized.get(column) is None:
                normalized.pop(column, None)
        return User.model_validate(normalized)
