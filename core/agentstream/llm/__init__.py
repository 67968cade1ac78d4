"""LLM provider abstraction."""

from agentstream.llm.provider import LLMProvider, LLMProviderError, Tool, ToolResult, ToolUse
from agentstream.llm.stream_events import (
    FinishEvent,
    StreamErrorEvent,
    StreamEvent,
    TextDeltaEvent,
    ToolCallEvent,
)

__all__ = [
    "LLMProvider",
    "LLMProviderError",
    "Tool",
    "ToolUse",
    "ToolResult",
    "StreamEvent",
    "TextDeltaEvent",
    "ToolCallEvent",
    "FinishEvent",
    "StreamErrorEvent",
]
