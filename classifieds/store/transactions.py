from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from opentelemetry import trace
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from classifieds.store.retry import compute_backoff_seconds


log = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")


class WriteConflict(Exception):
    """Raised by a transaction body when the document changed since it was read."""


class TransactionAborted(Exception):
    def __init__(self, attempts: int):
        super().__init__(f"transaction aborted after {attempts} conflicting attempts")
        self.attempts = attempts


async def run_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    fn: Callable[[AsyncSession], Awaitable[T]],
    *,
    max_attempts: int = 5,
) -> T:
    """
    Run fn inside a fresh session and commit it.
    A WriteConflict (or a lost insert race surfacing as IntegrityError) rolls the
    attempt back and retries with backoff; any other error propagates after rollback.
    Either every write of one attempt commits or none do.
    """
    last: Exception | None = None
    for attempt in range(1, max_attempts + 1):
        with tracer.start_as_current_span("store.transaction") as span:
            span.set_attribute("store.transaction.attempt", attempt)
            async with session_factory() as db:
                try:
                    result = await fn(db)
                    await db.commit()
                    return result
                except (WriteConflict, IntegrityError) as e:
                    await db.rollback()
                    span.set_attribute("store.transaction.conflict", True)
                    log.info("transaction conflict attempt=%d/%d: %s", attempt, max_attempts, type(e).__name__)
                    last = e
        if attempt < max_attempts:
            await asyncio.sleep(compute_backoff_seconds(attempt))

    raise TransactionAborted(max_attempts) from last
