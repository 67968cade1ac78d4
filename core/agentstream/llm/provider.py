"""Model-completion capability used by the run driver.

A provider turns a transcript (OpenAI-format dicts) plus tool definitions into
a stream of ``StreamEvent`` objects. Backends plug in by subclassing
``LLMProvider``; see ``litellm.LiteLLMProvider`` and ``mock.MockLLMProvider``.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Tool:
    """Definition of a callable tool as advertised to the model."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)  # JSON schema


@dataclass
class ToolUse:
    id: str
    name: str
    input: dict[str, Any]


@dataclass
class ToolResult:
    tool_use_id: str
    content: str
    is_error: bool = False


class LLMProviderError(Exception):
    """Raised when the model-completion call itself fails.

    Covers network, authentication and rate-limit failures as well as
    non-recoverable stream errors. Tool failures are never reported this way.
    """


class LLMProvider(ABC):
    """
    Base class for streaming model backends.

    Subclasses own authentication and wire formats, and must surface
    transport or API failures as LLMProviderError so the driver can end the
    run with a single error frame.
    """

    model: str = ""

    @abstractmethod
    def stream(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        tools: list[Tool] | None = None,
        max_tokens: int = 4096,
    ) -> AsyncIterator["StreamEvent"]:
        """
        Produce one model response as events.

        The provider never executes tools. It reports requested calls as
        ToolCallEvents after any text, then a FinishEvent.

        Args:
            messages: Transcript in OpenAI chat format, oldest first
            system: System prompt, sent ahead of the transcript
            tools: Tool definitions the model may call
            max_tokens: Output token cap for this response
        """


# Deferred import target for type annotation
from agentstream.llm.stream_events import StreamEvent as StreamEvent  # noqa: E402, F401
