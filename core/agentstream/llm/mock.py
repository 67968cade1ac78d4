"""Scripted LLM provider for tests and offline runs."""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from agentstream.llm.provider import LLMProvider, LLMProviderError, Tool
from agentstream.llm.stream_events import (
    FinishEvent,
    StreamEvent,
    TextDeltaEvent,
    ToolCallEvent,
)


@dataclass
class StreamScript:
    """One scripted stream() invocation.

    - text only  -> yields TextDeltaEvent(s) + FinishEvent (turn ends)
    - tool_calls -> yields ToolCallEvent(s) + FinishEvent (caller runs tools, calls stream again)
    - error      -> raises LLMProviderError after any text chunks
    """

    text: str = ""
    tool_calls: list[dict[str, Any]] | None = None  # [{name, id, input}, ...]
    error: str | None = None


class MockLLMProvider(LLMProvider):
    """Mock LLM that plays back a flat list of StreamScript entries.

    Each call to stream() pops the next entry. Text is split on whitespace so
    callers observe several deltas per turn. Once the scripts run out a
    fallback reply is produced so runs can always terminate.
    """

    def __init__(
        self,
        scripts: list[StreamScript] | None = None,
        fallback_text: str = "(no more scripts)",
    ):
        self._scripts: list[StreamScript] = list(scripts or [])
        self._fallback_text = fallback_text
        self.model = "mock-scriptable"
        self.calls: list[list[dict[str, Any]]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def stream(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        tools: list[Tool] | None = None,
        max_tokens: int = 4096,
    ) -> AsyncIterator[StreamEvent]:
        self.calls.append(list(messages))
        index = len(self.calls) - 1

        if index < len(self._scripts):
            script = self._scripts[index]
        else:
            script = StreamScript(text=self._fallback_text)

        snapshot = ""
        for chunk in _split_chunks(script.text):
            snapshot += chunk
            yield TextDeltaEvent(content=chunk, snapshot=snapshot)

        if script.error is not None:
            raise LLMProviderError(script.error)

        for i, tc in enumerate(script.tool_calls or []):
            yield ToolCallEvent(
                tool_use_id=tc.get("id", f"tc_{index}_{i}_{tc['name']}"),
                tool_name=tc["name"],
                tool_input=tc.get("input", {}),
            )

        yield FinishEvent(
            stop_reason="tool_use" if script.tool_calls else "end_turn",
            input_tokens=10,
            output_tokens=10,
            model=self.model,
        )


def _split_chunks(text: str) -> list[str]:
    """Split text into word-sized chunks that concatenate back to the input."""
    if not text:
        return []
    chunks = [word + " " for word in text.split(" ")]
    chunks[-1] = chunks[-1][:-1]
    return [c for c in chunks if c]
