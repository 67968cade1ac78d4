"""Conversation messages and their content blocks.

A transcript is an append-only list of Message objects. Each message holds an
ordered list of content blocks drawn from a closed union: TextBlock,
ToolUseBlock and ToolResultBlock. An assistant message carrying ToolUseBlocks
is followed by exactly one user message carrying one ToolResultBlock per
ToolUseBlock, in the same order.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal


@dataclass(frozen=True)
class TextBlock:
    """Plain text content."""

    type: Literal["text"] = "text"
    text: str = ""


@dataclass(frozen=True)
class ToolUseBlock:
    """A tool invocation requested by the model."""

    type: Literal["tool_use"] = "tool_use"
    id: str = ""
    name: str = ""
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResultBlock:
    """The outcome of executing one ToolUseBlock."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str = ""
    content: str = ""
    is_error: bool = False


ContentBlock = TextBlock | ToolUseBlock | ToolResultBlock


@dataclass
class Message:
    """A single message in a run transcript.

    Attributes:
        role: "user" or "assistant". Tool results travel in user messages.
        content: Ordered content blocks.
    """

    role: Literal["user", "assistant"]
    content: list[ContentBlock] = field(default_factory=list)

    @classmethod
    def user_text(cls, text: str) -> Message:
        return cls(role="user", content=[TextBlock(text=text)])

    @property
    def text(self) -> str:
        """Concatenated text of all TextBlocks."""
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    @property
    def tool_results(self) -> list[ToolResultBlock]:
        return [b for b in self.content if isinstance(b, ToolResultBlock)]

    def to_llm_dicts(self) -> list[dict[str, Any]]:
        """Convert to OpenAI-format message dicts.

        A user message holding tool results expands into one ``tool`` message
        per result (error results are prefixed with ``ERROR: ``), followed by a
        ``user`` message for any remaining text.
        """
        text_parts: list[str] = []
        tool_calls: list[dict[str, Any]] = []
        tool_messages: list[dict[str, Any]] = []

        for block in self.content:
            if isinstance(block, TextBlock):
                text_parts.append(block.text)
            elif isinstance(block, ToolUseBlock):
                tool_calls.append(
                    {
                        "id": block.id,
                        "type": "function",
                        "function": {"name": block.name, "arguments": json.dumps(block.args)},
                    }
                )
            elif isinstance(block, ToolResultBlock):
                content = f"ERROR: {block.content}" if block.is_error else block.content
                tool_messages.append(
                    {"role": "tool", "tool_call_id": block.tool_use_id, "content": content}
                )
            else:
                raise TypeError(f"Unknown content block: {block!r}")

        text = "".join(text_parts)

        if self.role == "assistant":
            d: dict[str, Any] = {"role": "assistant", "content": text}
            if tool_calls:
                d["tool_calls"] = tool_calls
            return [d]

        if tool_messages:
            return tool_messages + ([{"role": "user", "content": text}] if text else [])
        return [{"role": "user", "content": text}]


def to_llm_messages(messages: list[Message]) -> list[dict[str, Any]]:
    """Flatten a transcript into the provider's message list."""
    result: list[dict[str, Any]] = []
    for message in messages:
        result.extend(message.to_llm_dicts())
    return result
