"""Event Bus and typed lifecycle events for the dev server.

The orchestrator publishes lifecycle events. Front ends subscribe and render.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventBus:
    """In-process pub/sub for dev server lifecycle events.

    Events are routed by exact type. Each subscriber owns a queue; with
    ``maxsize`` set, a slow subscriber drops new events instead of
    blocking the publisher.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._maxsize = maxsize
        self._subscribers: dict[type, list[asyncio.Queue]] = {}

    def subscribe(self, event_type: type[T]) -> asyncio.Queue[T]:
        """Subscribe to events of a specific type. Returns a Queue."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._maxsize)
        self._subscribers.setdefault(event_type, []).append(queue)
        return queue

    def unsubscribe(self, event_type: type[T], queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(event_type, [])
        if queue in queues:
            queues.remove(queue)

    def publish(self, event: object) -> None:
        """Publish an event to all subscribers of its type."""
        for queue in self._subscribers.get(type(event), []):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Event queue full, dropping %s", type(event).__name__)

    async def iter_events(self, event_type: type[T]) -> AsyncIterator[T]:
        """Async iterator for events of a specific type."""
        queue = self.subscribe(event_type)
        try:
            while True:
                yield await queue.get()
        finally:
            self.unsubscribe(event_type, queue)


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DevServerStartedEvent:
    """A dev server bound its port and finished post-start work."""
    name: str
    url: str
    port: int


@dataclass(frozen=True)
class DevServerStoppedEvent:
    """A dev server released its resources (``failures`` may be non-zero)."""
    name: str
    failures: int = 0


@dataclass(frozen=True)
class TunnelReadyEvent:
    """The public tunnel produced a URL."""
    url: str


@dataclass(frozen=True)
class PlatformOpenedEvent:
    """A project URL was opened on a platform runtime."""
    runtime: str
    url: str
