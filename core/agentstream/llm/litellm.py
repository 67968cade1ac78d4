"""LiteLLM provider - multi-provider streaming completions.

Model names follow LiteLLM conventions, e.g. ``anthropic/claude-sonnet-4-20250514``,
``gpt-4o`` or ``gemini/gemini-2.5-flash``.
"""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import litellm

from agentstream.llm.provider import LLMProvider, LLMProviderError, Tool
from agentstream.llm.stream_events import (
    FinishEvent,
    StreamEvent,
    TextDeltaEvent,
    ToolCallEvent,
)

logger = logging.getLogger(__name__)


def _accumulate_tool_call_delta(accumulated: list[dict[str, Any]], tool_call_delta: Any) -> None:
    """Merge one streamed tool-call fragment into the per-index accumulator."""
    idx = tool_call_delta.index or 0
    while idx >= len(accumulated):
        accumulated.append({"id": "", "name": "", "arguments": ""})

    if tool_call_delta.id:
        accumulated[idx]["id"] = tool_call_delta.id
    function = getattr(tool_call_delta, "function", None)
    if function:
        if function.name:
            accumulated[idx]["name"] = function.name
        if function.arguments:
            accumulated[idx]["arguments"] += function.arguments


def _parse_arguments(name: str, raw: str) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Tool call '%s' has invalid JSON arguments: %s", name, e)
        return {}
    return parsed if isinstance(parsed, dict) else {"value": parsed}


def _tool_to_openai(tool: Tool) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.parameters or {"type": "object", "properties": {}},
        },
    }


class LiteLLMProvider(LLMProvider):
    """
    LLM provider backed by ``litellm.acompletion`` with ``stream=True``.

    Text chunks are yielded as they arrive. Tool-call fragments are
    reassembled and yielded as complete ToolCallEvents once the provider
    reports a finish reason.
    """

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        api_base: str | None = None,
        temperature: float = 0.7,
    ):
        self.model = model
        self._api_key = api_key
        self._api_base = api_base
        self._temperature = temperature

    def _build_completion_kwargs(
        self,
        messages: list[dict[str, Any]],
        system: str,
        tools: list[Tool] | None,
        max_tokens: int,
    ) -> dict[str, Any]:
        full_messages = [{"role": "system", "content": system}, *messages] if system else messages
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": full_messages,
            "temperature": self._temperature,
            "max_tokens": max_tokens,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if tools:
            kwargs["tools"] = [_tool_to_openai(t) for t in tools]
        if self._api_key:
            kwargs["api_key"] = self._api_key
        if self._api_base:
            kwargs["api_base"] = self._api_base
        return kwargs

    async def stream(
        self,
        messages: list[dict[str, Any]],
        system: str = "",
        tools: list[Tool] | None = None,
        max_tokens: int = 4096,
    ) -> AsyncIterator[StreamEvent]:
        kwargs = self._build_completion_kwargs(messages, system, tools, max_tokens)

        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as e:
            raise LLMProviderError(f"LLM completion failed: {e}") from e

        snapshot = ""
        stop_reason = ""
        input_tokens = 0
        output_tokens = 0
        accumulated: list[dict[str, Any]] = []

        try:
            async for chunk in response:
                usage = getattr(chunk, "usage", None)
                if usage:
                    input_tokens = getattr(usage, "prompt_tokens", 0) or input_tokens
                    output_tokens = getattr(usage, "completion_tokens", 0) or output_tokens

                if not chunk.choices:
                    continue

                choice = chunk.choices[0]
                delta = choice.delta
                content = getattr(delta, "content", None)
                if content:
                    snapshot += content
                    yield TextDeltaEvent(content=content, snapshot=snapshot)

                tool_call_deltas = getattr(delta, "tool_calls", None)
                if tool_call_deltas:
                    for tc in tool_call_deltas:
                        _accumulate_tool_call_delta(accumulated, tc)

                if choice.finish_reason:
                    stop_reason = choice.finish_reason
        except Exception as e:
            raise LLMProviderError(f"LLM streaming failed: {e}") from e

        for index, call in enumerate(accumulated):
            if not call["name"]:
                logger.warning("Dropping tool call #%d with no name", index)
                continue
            yield ToolCallEvent(
                tool_use_id=call["id"] or f"call_{index}",
                tool_name=call["name"],
                tool_input=_parse_arguments(call["name"], call["arguments"]),
            )

        yield FinishEvent(
            stop_reason=stop_reason,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=self.model,
        )
