from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

import redis.asyncio as redis

from classifieds.core.config import Settings


log = logging.getLogger(__name__)

LISTINGS_TOPIC = "listings"


def favorites_topic(identity_id: str) -> str:
    return f"favorites:{identity_id}"


class ChangeListener(Protocol):
    def __aiter__(self) -> "ChangeListener": ...

    async def __anext__(self) -> dict[str, Any]: ...

    def drain(self) -> int: ...

    async def aclose(self) -> None: ...


class ChangeBus(Protocol):
    async def publish(self, topic: str, event: dict[str, Any]) -> None: ...

    async def listen(self, topic: str) -> ChangeListener: ...


_CLOSED = object()


class _QueueListener:
    def __init__(self, bus: "InMemoryChangeBus", topic: str):
        self._bus = bus
        self._topic = topic
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def __aiter__(self) -> "_QueueListener":
        return self

    async def __anext__(self) -> dict[str, Any]:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def drain(self) -> int:
        """Discard queued events so a burst of writes costs one refetch."""
        dropped = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return dropped
            if item is _CLOSED:
                self._queue.put_nowait(item)
                return dropped
            dropped += 1

    def put(self, event: dict[str, Any]) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._bus._detach(self._topic, self)
        self._queue.put_nowait(_CLOSED)


class InMemoryChangeBus:
    """Fan-out of change events to listeners in this process."""

    def __init__(self) -> None:
        self._listeners: dict[str, set[_QueueListener]] = {}

    async def publish(self, topic: str, event: dict[str, Any]) -> None:
        for listener in list(self._listeners.get(topic, ())):
            listener.put(event)

    async def listen(self, topic: str) -> _QueueListener:
        listener = _QueueListener(self, topic)
        self._listeners.setdefault(topic, set()).add(listener)
        return listener

    def listener_count(self, topic: str) -> int:
        return len(self._listeners.get(topic, ()))

    def _detach(self, topic: str, listener: _QueueListener) -> None:
        listeners = self._listeners.get(topic)
        if not listeners:
            return
        listeners.discard(listener)
        if not listeners:
            del self._listeners[topic]


class _PubSubListener:
    def __init__(self, pubsub):
        self._pubsub = pubsub
        self._closed = False

    def __aiter__(self) -> "_PubSubListener":
        return self

    async def __anext__(self) -> dict[str, Any]:
        while not self._closed:
            message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            if message is None:
                continue
            return json.loads(message["data"])
        raise StopAsyncIteration

    def drain(self) -> int:
        # redis does not expose the socket backlog; every message costs a refetch
        return 0

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._pubsub.unsubscribe()
        await self._pubsub.aclose()


class RedisChangeBus:
    """Change events over Redis pub/sub, for several API processes sharing one database."""

    def __init__(self, redis_url: str, *, namespace: str):
        self.r = redis.from_url(redis_url, decode_responses=True)
        self.namespace = namespace

    def _channel(self, topic: str) -> str:
        return f"chg:{self.namespace}:{topic}"

    async def publish(self, topic: str, event: dict[str, Any]) -> None:
        await self.r.publish(self._channel(topic), json.dumps(event, separators=(",", ":")))

    async def listen(self, topic: str) -> _PubSubListener:
        pubsub = self.r.pubsub()
        await pubsub.subscribe(self._channel(topic))
        return _PubSubListener(pubsub)


def build_change_bus(settings: Settings) -> ChangeBus:
    if settings.change_bus == "redis":
        log.info("change bus: redis url=%s", settings.redis_url)
        return RedisChangeBus(settings.redis_url, namespace=settings.app_id)
    if settings.change_bus != "memory":
        raise ValueError(f"unknown change_bus '{settings.change_bus}'")
    return InMemoryChangeBus()
