from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from pydantic_core import to_jsonable_python

if TYPE_CHECKING:
    from collections.abc import Callable

# Columns a partial update may never touch
IMMUTABLE_COLUMNS = frozenset({"id", "user_id", "created_at"})


async def run(func: Callable[[], Any]) -> Any:
    """Run a blocking PostgREST call off the event loop."""
    return await asyncio.to_thread(func)


def first(data: Any) -> dict[str, Any]:
    if isinstance(data, list) and data:
        return data[0]
    if isinstance(data, dict):
        return data
    return {}


def to_row_changes(changes: dict[str, Any] | None) -> dict[str, Any]:
    """Drop immutable columns and make values JSON-serializable for PostgREST."""
    return {
        k: to_jsonable_python(v)
        for k, v in (changes or {}).items()
        if k not in IMMUTABLE_COLUMNS
    }
