from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

BATCH_NUMBER_LOCK_KEY = 581_204_377  # arbitrary stable int


async def lock_batch_numbering(session: AsyncSession) -> None:
    """Serialize batch-number allocation until the transaction ends.

    Only PostgreSQL has advisory locks; SQLite already serializes writers.
    """
    if session.get_bind().dialect.name != "postgresql":
        return
    await session.execute(text("SELECT pg_advisory_xact_lock(:k)"), {"k": BATCH_NUMBER_LOCK_KEY})
