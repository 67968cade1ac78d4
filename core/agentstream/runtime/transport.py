"""SSE stream transport.

Writes translated lifecycle events onto an outbound stream and guarantees:

- frames go out in exactly the order they are produced
- exactly one terminal frame (``done`` or ``error``) per run, then close
- writes after close are no-ops, and closing twice never raises
- a failed write (client gone) cancels the run via its CancellationToken
"""

import logging
from collections.abc import AsyncIterable
from typing import Any, Protocol

from agentstream.loop.cancellation import CancellationToken
from agentstream.loop.driver import GENERIC_ERROR_MESSAGE
from agentstream.loop.events import LifecycleEvent, RunError, is_terminal
from agentstream.runtime.translator import encode_sse, translate

logger = logging.getLogger(__name__)


class StreamWriter(Protocol):
    """The slice of ``aiohttp.web.StreamResponse`` the transport relies on."""

    async def write(self, data: bytes) -> None: ...

    async def write_eof(self, data: bytes = b"") -> None: ...


class SSETransport:
    """
    Frames lifecycle events onto a long-lived SSE response.

    Lifecycle:
        transport = SSETransport(response, token)
        await transport.pump(channel)   # returns once closed
    """

    def __init__(self, writer: StreamWriter, token: CancellationToken | None = None) -> None:
        self._writer = writer
        self._token = token
        self._closed = False
        self._terminal_sent = False
        self.frames_sent = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def terminal_sent(self) -> bool:
        return self._terminal_sent

    async def send(self, payload: dict[str, Any]) -> bool:
        """Write one frame. Returns False if the stream is closed or the write failed."""
        if self._closed:
            return False
        try:
            await self._writer.write(encode_sse(payload))
        except ConnectionError as e:
            logger.info("Client disconnected during write: %s", e)
            self._closed = True
            if self._token is not None:
                self._token.cancel("client disconnected")
            return False
        self.frames_sent += 1
        return True

    async def send_event(self, event: LifecycleEvent) -> bool:
        """Translate and write one event, enforcing the single-terminal rule."""
        if self._terminal_sent:
            logger.debug("Ignoring %s after terminal frame", event.type)
            return False
        ok = await self.send(translate(event))
        if is_terminal(event):
            self._terminal_sent = True
        return ok

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._writer.write_eof()
        except ConnectionError as e:
            logger.debug("Ignoring error while closing stream: %s", e)

    async def pump(self, events: AsyncIterable[LifecycleEvent]) -> None:
        """Forward *events* until a terminal event, then close.

        If iterating *events* raises, a single error frame is synthesized. If
        the events end without a terminal event, one is synthesized as well.
        """
        try:
            async for event in events:
                sent = await self.send_event(event)
                if self._terminal_sent or not sent:
                    break
        except Exception:
            logger.exception("Event stream failed")
            if not self._terminal_sent:
                await self.send_event(RunError(message=GENERIC_ERROR_MESSAGE))
        else:
            if not self._terminal_sent and not self._closed:
                logger.warning("Event stream ended without a terminal event")
                await self.send_event(RunError(message=GENERIC_ERROR_MESSAGE))
        finally:
            await self.close()
