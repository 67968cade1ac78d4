"""Events yielded by ``LLMProvider.stream()``.

Providers translate their wire format into these four frozen dataclasses; the
run driver consumes them and never sees provider-specific chunks. Tool calls
arrive fully assembled, never as argument fragments.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal


@dataclass(frozen=True)
class TextDeltaEvent:
    """Incremental assistant text."""

    type: Literal["text_delta"] = "text_delta"
    content: str = ""
    snapshot: str = ""  # all text of this response so far


@dataclass(frozen=True)
class ToolCallEvent:
    """One complete tool call with parsed arguments."""

    type: Literal["tool_call"] = "tool_call"
    tool_use_id: str = ""
    tool_name: str = ""
    tool_input: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FinishEvent:
    """Last event of a successful response, with usage if the provider reports it."""

    type: Literal["finish"] = "finish"
    stop_reason: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""


@dataclass(frozen=True)
class StreamErrorEvent:
    """In-band provider error. Non-recoverable errors abort the run."""

    type: Literal["error"] = "error"
    error: str = ""
    recoverable: bool = False


StreamEvent = TextDeltaEvent | ToolCallEvent | FinishEvent | StreamErrorEvent
