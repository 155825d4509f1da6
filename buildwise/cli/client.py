"""Synchronous wrappers that let Typer commands call the async services.

Each call runs in its own event loop via ``asyncio.run`` and disposes the
engine afterwards so no pooled connection outlives the loop it was bound to.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from buildwise.db.session import dispose_engine
from buildwise.store import DocumentStore, get_store

T = TypeVar("T")


def run_with_store(operation: Callable[[DocumentStore], Awaitable[T]]) -> T:
    async def _main() -> T:
        try:
            return await operation(get_store())
        finally:
            await dispose_engine()

    return asyncio.run(_main())


def short(value: Any, width: int = 40) -> str:
    text = "" if value is None else str(value)
    return text if len(text) <= width else text[: width - 3] + "..."
