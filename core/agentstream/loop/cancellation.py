"""Explicit cancellation for in-flight runs.

A CancellationToken is created per run and threaded through every suspension
point (model stream reads, tool executions). Cancelling it interrupts whatever
the run is currently awaiting and makes that await raise RunCancelledError.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_EXHAUSTED = object()


class RunCancelledError(Exception):
    """Raised at a suspension point after the run's token was cancelled."""


class CancellationToken:
    """
    One-shot cancellation signal shared between a run and its transport.

    Usage:
        token = CancellationToken()
        result = await token.guard(tool_call())        # interruptible await
        async for event in token.iterate(stream):      # interruptible iteration
            ...
        token.cancel("client disconnected")            # from the transport side
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Signal cancellation. Idempotent; the first reason wins."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        logger.debug("Run cancelled: %s", reason)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelledError(self._reason)

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable* unless the token fires first.

        If the token fires first the pending work is cancelled and
        RunCancelledError is raised. Exceptions from the awaitable propagate
        unchanged.
        """
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise RunCancelledError(self._reason)
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.wait({task})
        raise RunCancelledError(self._reason)

    async def iterate(self, source: AsyncIterator[T]) -> AsyncIterator[T]:
        """Iterate *source*, guarding every ``__anext__`` with this token."""
        iterator = aiter(source)
        try:
            while True:
                item = await self.guard(_next_or_exhausted(iterator))
                if item is _EXHAUSTED:
                    return
                yield item
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()


async def _next_or_exhausted(iterator: AsyncIterator[Any]) -> Any:
    try:
        return await anext(iterator)
    except StopAsyncIteration:
        return _EXHAUSTED
