"""Transaction scope used by every points-affecting operation."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession


@asynccontextmanager
async def unit_of_work(session: AsyncSession, *, label: str) -> AsyncIterator[AsyncSession]:
    """Commit everything written inside the block at once, or nothing at all.

    Any exception rolls the session back before it is re-raised, so callers never
    observe a partially applied ledger append, counter update or status change.
    """

    try:
        yield session
        await session.commit()
    except Exception as exc:
        await session.rollback()
        logger.warning("Unit of work rolled back", label=label, error=type(exc).__name__)
        raise
