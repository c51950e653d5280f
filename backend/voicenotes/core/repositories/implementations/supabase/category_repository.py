from __future__ import annotations

from typing import TYPE_CHECKING, Any

from voicenotes.core.models.category import Category
from voicenotes.core.repositories.category_repository import CategoryRepository

from ._support import first, run

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from supabase import Client


class SupabaseCategoryRepository(CategoryRepository):
    TABLE_NAME = "categories"

    def __init__(self, client: Client) -> None:
        self._client: Client = client

    async def list(self, *, user_id: UUID | None = None) -> Sequence[Category]:
        def _query():
            q = self._client.table(self.TABLE_NAME).select("*")
            if user_id is not None:
                q = q.or_(f"is_system.eq.true,user_id.eq.{user_id}")
            else:
                q = q.eq("is_system", True)
            return q.order("name").execute()

        resp = await run(_query)
        return [self._row_to_category(r) for r in resp.data or []]

    async def get_by_slug(self, slug: str) -> Category | None:
        resp = await run(
            lambda: self._client.table(self.TABLE_NAME).select("*").eq("slug", slug).limit(1).execute()
        )
        items = resp.data or []
        return self._row_to_category(items[0]) if items else None

    async def create(self, category: Category) -> Category:
        row = category.to_row()
        resp = await run(lambda: self._client.table(self.TABLE_NAME).insert(row).execute())
        return self._row_to_category(first(resp.data))

    async def increment_usage(self, slugs: Sequence[str]) -> None:
        if not slugs:
            return
        # Atomic increment lives in the database, see increment_category_usage in schema.sql
        await run(
            lambda: self._client.rpc("increment_category_usage", params={"p_slugs": list(slugs)}).execute()
        )

    @staticmethod
    def _row_to_category(row: dict[str, Any]) -> Category:
        return Category.model_validate(row)
