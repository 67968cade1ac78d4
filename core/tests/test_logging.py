"""Tests for structured logging and run context propagation."""

import asyncio
import json
import logging

import pytest

from agentstream.observability import (
    clear_trace_context,
    configure_logging,
    get_trace_context,
    set_trace_context,
)
from agentstream.observability.logging import HumanReadableFormatter, StructuredFormatter


@pytest.fixture(autouse=True)
def _reset_context():
    clear_trace_context()
    yield
    clear_trace_context()


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("agentstream.test", logging.INFO, __file__, 1, message, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestTraceContext:
    def test_set_merges_fields(self):
        set_trace_context(run_id="r1")
        set_trace_context(conversation_id="c1")
        assert get_trace_context() == {"run_id": "r1", "conversation_id": "c1"}

    def test_get_returns_copy(self):
        set_trace_context(run_id="r1")
        get_trace_context()["run_id"] = "mutated"
        assert get_trace_context()["run_id"] == "r1"

    @pytest.mark.asyncio
    async def test_context_is_isolated_between_tasks(self):
        async def run(run_id: str) -> dict:
            set_trace_context(run_id=run_id)
            await asyncio.sleep(0.01)
            return get_trace_context()

        first, second = await asyncio.gather(run("a"), run("b"))
        assert first == {"run_id": "a"}
        assert second == {"run_id": "b"}
        assert get_trace_context() == {}


class TestFormatters:
    def test_structured_includes_context_and_extras(self):
        set_trace_context(run_id="run-123", conversation_id="conv-456")
        line = StructuredFormatter().format(_record("\033[32mRun started\033[0m", latency_ms=42))

        entry = json.loads(line)
        assert entry["message"] == "Run started"
        assert entry["level"] == "info"
        assert entry["run_id"] == "run-123"
        assert entry["conversation_id"] == "conv-456"
        assert entry["latency_ms"] == 42
        assert "event" not in entry

    def test_human_readable_prefix(self):
        set_trace_context(run_id="abcdef0123456789", conversation_id="0123456789abcdef")
        line = HumanReadableFormatter().format(_record("hello"))

        assert "run:abcdef01" in line
        assert "conv:01234567" in line
        assert line.endswith("hello")

    def test_configure_logging_installs_single_handler(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging(level="DEBUG", format="human")
            configure_logging(level="WARNING", format="human")
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, HumanReadableFormatter)
            assert root.level == logging.WARNING
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
