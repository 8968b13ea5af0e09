from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from classifieds.core.config import settings
from classifieds.core.db import SessionLocal
from classifieds.store.changes import ChangeBus, build_change_bus
from classifieds.store.live import LiveQuery
from classifieds.store.transactions import run_transaction


log = logging.getLogger(__name__)

T = TypeVar("T")


class Store:
    """Document store as seen by the marketplace core: reads, live reads, transactions, change events."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        bus: ChangeBus,
        *,
        app_id: str,
        max_attempts: int = 5,
    ):
        self.session_factory = session_factory
        self.bus = bus
        self.app_id = app_id
        self.max_attempts = max_attempts

    def session(self) -> AsyncSession:
        return self.session_factory()

    async def notify(self, topic: str, **event: Any) -> None:
        # the write is already committed; a lost notification only delays watchers
        try:
            await self.bus.publish(topic, event)
        except Exception:
            log.exception("change notification failed: topic=%s", topic)

    def watch(
        self,
        topic: str,
        fetch: Callable[[AsyncSession], Awaitable[T]],
        on_snapshot: Callable[[T], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> LiveQuery[T]:
        return LiveQuery(
            bus=self.bus,
            session_factory=self.session_factory,
            topic=topic,
            fetch=fetch,
            on_snapshot=on_snapshot,
            on_error=on_error,
        ).start()

    async def run_transaction(self, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        return await run_transaction(self.session_factory, fn, max_attempts=self.max_attempts)


_store: Store | None = None


def get_store() -> Store:
    global _store
    if _store is None:
        _store = Store(
            SessionLocal,
            build_change_bus(settings),
            app_id=settings.app_id,
            max_attempts=settings.transaction_max_attempts,
        )
    return _store
