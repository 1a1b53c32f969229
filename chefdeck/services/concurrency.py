# Overview: database concurrency helpers shared by the inventory services.

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write of a cycle document.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, PostgreSQL honors it.
    """
    return query.with_for_update()


async def run_with_retry(session: AsyncSession, func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute an async DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, lock timeouts) and IntegrityError
    (two writers inserting the same unique key at once).
    """
    for attempt in range(attempts):
        try:
            return await func()
        except (OperationalError, IntegrityError) as exc:
            await session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning(f"⚠️ Retrying DB operation after {type(exc).__name__} (attempt {attempt + 1})")
            await asyncio.sleep(backoff_base * (2 ** attempt))
