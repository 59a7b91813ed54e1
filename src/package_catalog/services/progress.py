"""In-process fan-out of sync progress events.

Publishers never wait on subscribers: each subscriber owns a bounded
queue, and an event that does not fit is dropped for that subscriber only.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from package_catalog.domain.entities import ProgressEvent

logger = logging.getLogger(__name__)


class ProgressChannel:
    def __init__(self, maxsize: int = 256) -> None:
        self._maxsize = maxsize
        self._subscribers: set[asyncio.Queue[ProgressEvent]] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: ProgressEvent) -> None:
        for queue in tuple(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.debug("Dropping %s event for a slow subscriber", event.phase)

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[asyncio.Queue[ProgressEvent]]:
        """Yield a queue that receives every event published while open."""
        queue: asyncio.Queue[ProgressEvent] = asyncio.Queue(maxsize=self._maxsize)
        self._subscribers.add(queue)
        try:
            yield queue
        finally:
            self._subscribers.discard(queue)
