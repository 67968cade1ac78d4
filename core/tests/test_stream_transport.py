"""
Tests for the event pipeline between a run and its HTTP response.

Covers:
- translate(): lifecycle event -> wire payload table
- encode_sse(): SSE framing
- EventChannel: ordering, close semantics, bounded sends
- SSETransport: single terminal frame, close idempotency, disconnect handling
- Backpressure: a run waits for a slow client instead of running ahead
"""

import asyncio
import json

import pytest

from agentstream.llm.mock import MockLLMProvider, StreamScript
from agentstream.loop.cancellation import CancellationToken, RunCancelledError
from agentstream.loop.driver import GENERIC_ERROR_MESSAGE, RunState
from agentstream.loop.events import Done, RunError, TextDelta, ToolEnd, ToolStart
from agentstream.runner.tool_registry import ToolRegistry
from agentstream.runtime.channel import EventChannel
from agentstream.runtime.session import create_session
from agentstream.runtime.translator import encode_sse, translate
from agentstream.runtime.transport import SSETransport


class FakeWriter:
    """Records frames written to it; can be told to fail after N writes."""

    def __init__(self, fail_after: int | None = None) -> None:
        self.frames: list[bytes] = []
        self.eof_calls = 0
        self._fail_after = fail_after

    async def write(self, data: bytes) -> None:
        if self._fail_after is not None and len(self.frames) >= self._fail_after:
            raise ConnectionResetError("Cannot write to closing transport")
        self.frames.append(data)

    async def write_eof(self, data: bytes = b"") -> None:
        self.eof_calls += 1

    @property
    def payloads(self) -> list[dict]:
        return [json.loads(f.decode()[len("data: ") :]) for f in self.frames]


async def _events(*events):
    for event in events:
        yield event


# --- translator ---


class TestTranslate:
    def test_translation_table(self):
        assert translate(TextDelta(text="Hi")) == {"type": "text_delta", "text": "Hi"}
        assert translate(ToolStart(name="lookup")) == {"type": "tool_start", "tool_name": "lookup"}
        assert translate(ToolEnd(name="lookup")) == {"type": "tool_end", "tool_name": "lookup"}
        assert translate(Done()) == {"type": "done"}
        assert translate(RunError(message="boom")) == {"type": "error", "message": "boom"}

    def test_unknown_event_raises(self):
        with pytest.raises(TypeError):
            translate(object())

    def test_encode_sse_frame(self):
        frame = encode_sse({"type": "text_delta", "text": "a\nb"})
        assert frame.startswith(b"data: ")
        assert frame.endswith(b"\n\n")
        # JSON escapes newlines so a frame never spans multiple data lines
        assert frame.count(b"\n") == 2
        assert json.loads(frame[len(b"data: ") : -2]) == {"type": "text_delta", "text": "a\nb"}


# --- channel ---


class TestEventChannel:
    @pytest.mark.asyncio
    async def test_preserves_send_order(self):
        channel = EventChannel()
        events = [TextDelta(text=str(i)) for i in range(5)] + [Done()]

        async def produce():
            for event in events:
                await channel.send(event)
            channel.close()

        producer = asyncio.create_task(produce())
        received = [e async for e in channel]
        await producer

        assert received == events

    @pytest.mark.asyncio
    async def test_consumer_waits_for_producer(self):
        channel = EventChannel()

        async def produce():
            await asyncio.sleep(0.01)
            await channel.send(TextDelta(text="late"))
            channel.close()

        producer = asyncio.create_task(produce())
        received = [e async for e in channel]
        await producer

        assert received == [TextDelta(text="late")]

    @pytest.mark.asyncio
    async def test_send_waits_while_buffer_is_full(self):
        channel = EventChannel()
        await channel.send(TextDelta(text="a"))

        second = asyncio.create_task(channel.send(TextDelta(text="b")))
        await asyncio.sleep(0.01)
        assert not second.done()

        iterator = channel.__aiter__()
        assert await anext(iterator) == TextDelta(text="a")
        await asyncio.wait_for(second, timeout=1)
        channel.close()

        assert [e async for e in iterator] == [TextDelta(text="b")]

    @pytest.mark.asyncio
    async def test_cancel_releases_blocked_send(self):
        token = CancellationToken()
        channel = EventChannel(token)
        await channel.send(TextDelta(text="a"))

        blocked = asyncio.create_task(channel.send(TextDelta(text="b")))
        await asyncio.sleep(0.01)
        token.cancel("client disconnected")

        with pytest.raises(RunCancelledError):
            await asyncio.wait_for(blocked, timeout=1)

    @pytest.mark.asyncio
    async def test_send_after_close_is_dropped(self):
        channel = EventChannel()
        channel.close()
        channel.close()
        await channel.send(Done())

        assert channel.closed
        assert [e async for e in channel] == []


# --- transport ---


class TestSSETransport:
    @pytest.mark.asyncio
    async def test_pump_forwards_until_terminal(self):
        writer = FakeWriter()
        transport = SSETransport(writer)

        await transport.pump(_events(TextDelta(text="Hi"), Done(), TextDelta(text="late")))

        assert writer.payloads == [{"type": "text_delta", "text": "Hi"}, {"type": "done"}]
        assert writer.eof_calls == 1
        assert transport.closed
        assert transport.frames_sent == 2

    @pytest.mark.asyncio
    async def test_only_one_terminal_frame(self):
        writer = FakeWriter()
        transport = SSETransport(writer)

        assert await transport.send_event(RunError(message="first")) is True
        assert await transport.send_event(Done()) is False
        assert await transport.send_event(RunError(message="second")) is False

        assert writer.payloads == [{"type": "error", "message": "first"}]

    @pytest.mark.asyncio
    async def test_close_twice_is_noop(self):
        writer = FakeWriter()
        transport = SSETransport(writer)

        await transport.close()
        await transport.close()

        assert writer.eof_calls == 1
        assert await transport.send({"type": "done"}) is False
        assert writer.frames == []

    @pytest.mark.asyncio
    async def test_write_failure_cancels_run(self):
        writer = FakeWriter(fail_after=1)
        token = CancellationToken()
        transport = SSETransport(writer, token)

        await transport.pump(_events(TextDelta(text="a"), TextDelta(text="b"), Done()))

        assert len(writer.frames) == 1
        assert transport.closed
        assert token.cancelled
        assert token.reason == "client disconnected"
        assert writer.eof_calls == 0

    @pytest.mark.asyncio
    async def test_missing_terminal_is_synthesized(self):
        writer = FakeWriter()
        await SSETransport(writer).pump(_events(TextDelta(text="partial")))

        assert writer.payloads[-1] == {"type": "error", "message": GENERIC_ERROR_MESSAGE}
        assert [p["type"] for p in writer.payloads] == ["text_delta", "error"]

    @pytest.mark.asyncio
    async def test_producer_exception_becomes_single_error_frame(self):
        async def failing():
            yield TextDelta(text="partial")
            raise RuntimeError("internal detail")

        writer = FakeWriter()
        await SSETransport(writer).pump(failing())

        assert [p["type"] for p in writer.payloads] == ["text_delta", "error"]
        assert writer.payloads[-1]["message"] == GENERIC_ERROR_MESSAGE
        assert writer.eof_calls == 1

    @pytest.mark.asyncio
    async def test_pump_over_channel(self):
        channel = EventChannel()
        writer = FakeWriter()
        transport = SSETransport(writer)

        async def produce():
            await channel.send(ToolStart(name="ask_user_question"))
            await channel.send(ToolEnd(name="ask_user_question"))
            await channel.send(Done())
            channel.close()

        producer = asyncio.create_task(produce())
        await transport.pump(channel)
        await producer

        assert [p["type"] for p in writer.payloads] == ["tool_start", "tool_end", "done"]


# --- backpressure ---


class GatedWriter(FakeWriter):
    """FakeWriter whose writes wait until the gate is opened."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()

    async def write(self, data: bytes) -> None:
        await self.gate.wait()
        await super().write(data)


def _booking_session(booked: list[str]):
    registry = ToolRegistry()

    def book_slot(slot: str) -> dict:
        """Book an appointment slot."""
        booked.append(slot)
        return {"booked": slot}

    registry.register_function(book_slot)
    provider = MockLLMProvider(
        [
            StreamScript(tool_calls=[{"name": "book_slot", "input": {"slot": "9am"}}]),
            StreamScript(tool_calls=[{"name": "book_slot", "input": {"slot": "10am"}}]),
            StreamScript(text="Booked both."),
        ]
    )
    return create_session(provider, registry, frozenset())


class TestBackpressure:
    @pytest.mark.asyncio
    async def test_slow_client_holds_back_the_run(self):
        booked: list[str] = []
        session = _booking_session(booked)
        token = CancellationToken()
        channel = EventChannel(token)
        writer = GatedWriter()
        transport = SSETransport(writer, token)

        async def produce():
            try:
                return await session.driver.run([], "Book two slots", channel.send, token)
            finally:
                channel.close()

        producer = asyncio.create_task(produce())
        pump = asyncio.create_task(transport.pump(channel))
        await asyncio.sleep(0.2)

        # The first write never finished, so the second tool must not have run
        assert booked == ["9am"]
        assert writer.frames == []
        assert not producer.done()

        writer.gate.set()
        state = await asyncio.wait_for(producer, timeout=5)
        await asyncio.wait_for(pump, timeout=5)

        assert state is RunState.COMPLETE
        assert booked == ["9am", "10am"]
        assert writer.payloads[-1] == {"type": "done"}
        assert [p["type"] for p in writer.payloads[:4]] == [
            "tool_start",
            "tool_end",
            "tool_start",
            "tool_end",
        ]

    @pytest.mark.asyncio
    async def test_cancel_while_blocked_on_delivery_aborts_run(self):
        booked: list[str] = []
        session = _booking_session(booked)
        token = CancellationToken()
        channel = EventChannel(token)

        # Nobody reads the channel
        run = asyncio.create_task(session.driver.run([], "Book two slots", channel.send, token))
        await asyncio.sleep(0.1)
        assert not run.done()

        token.cancel("client disconnected")
        state = await asyncio.wait_for(run, timeout=1)

        assert state is RunState.ABORTED
        assert booked == ["9am"]
