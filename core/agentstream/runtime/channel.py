"""Producer/consumer channel carrying lifecycle events from a run to its transport."""

import asyncio
import logging
from collections.abc import AsyncIterator

from agentstream.loop.cancellation import CancellationToken
from agentstream.loop.events import LifecycleEvent

logger = logging.getLogger(__name__)


class EventChannel:
    """
    Ordered, single-consumer, bounded queue of lifecycle events.

    - send() waits while the buffer is full, so a run cannot get ahead of a
      client that stops reading. The wait is guarded by the run's token and
      raises RunCancelledError once the run is cancelled.
    - close() ends the stream; events sent after close are dropped.
    - Iterating the channel yields events in send order until close.
    """

    def __init__(self, token: CancellationToken | None = None, maxsize: int = 1) -> None:
        self._queue: asyncio.Queue[LifecycleEvent | None] = asyncio.Queue(maxsize=maxsize)
        self._token = token or CancellationToken()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: LifecycleEvent) -> None:
        if self._closed:
            logger.debug("Dropping %s sent after channel close", event.type)
            return
        await self._token.guard(self._queue.put(event))

    def close(self) -> None:
        """End the stream. Only the producer calls this, after its last send."""
        if self._closed:
            return
        self._closed = True
        # A full buffer is drained by the consumer, which then sees closed
        if not self._queue.full():
            self._queue.put_nowait(None)

    async def __aiter__(self) -> AsyncIterator[LifecycleEvent]:
        while True:
            if self._closed and self._queue.empty():
                break
            event = await self._queue.get()
            if event is None:
                break
            yield event
