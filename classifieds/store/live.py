from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from classifieds.store.changes import ChangeBus


log = logging.getLogger(__name__)

T = TypeVar("T")


class LiveQuery(Generic[T]):
    """
    A store read that re-runs whenever its topic reports a change.

    The first snapshot is delivered as soon as the task runs; later snapshots follow
    change events in the order the bus delivers them. A failing read is logged and
    the query stops emitting. cancel() is idempotent and releases the bus listener.
    """

    def __init__(
        self,
        *,
        bus: ChangeBus,
        session_factory: async_sessionmaker[AsyncSession],
        topic: str,
        fetch: Callable[[AsyncSession], Awaitable[T]],
        on_snapshot: Callable[[T], None],
        on_error: Callable[[Exception], None] | None = None,
    ):
        self.topic = topic
        self.fetch_count = 0
        self._bus = bus
        self._session_factory = session_factory
        self._fetch = fetch
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._task: asyncio.Task | None = None
        self._cancelled = False

    def start(self) -> "LiveQuery[T]":
        if self._task is None and not self._cancelled:
            self._task = asyncio.create_task(self._run(), name=f"live:{self.topic}")
        return self

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done() and not self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def add_done_callback(self, callback: Callable[["LiveQuery[T]"], None]) -> None:
        """Call back once the task has finished; immediately if it already has."""
        if self._task is None or self._task.done():
            callback(self)
        else:
            self._task.add_done_callback(lambda _task: callback(self))

    async def wait_closed(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def _refresh(self) -> None:
        async with self._session_factory() as db:
            snapshot = await self._fetch(db)
        self.fetch_count += 1
        if not self._cancelled:
            self._on_snapshot(snapshot)

    async def _run(self) -> None:
        listener = None
        try:
            # listen before the first read so no change between the two is missed
            listener = await self._bus.listen(self.topic)
            await self._refresh()
            async for _event in listener:
                listener.drain()
                await self._refresh()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.exception("live query failed: topic=%s", self.topic)
            if self._on_error is not None:
                self._on_error(e)
        finally:
            if listener is not None:
                await listener.aclose()
