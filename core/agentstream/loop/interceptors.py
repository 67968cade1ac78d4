"""Loop interceptors: per-turn tool execution and completion decisions.

After every model response the run driver hands the transcript to an
interceptor chain. Each interceptor shares one capability,
``intercept(context) -> InterceptorResult``, and ``complete=True`` means the
run stops without another model call.

Composition is by delegation, not inheritance:

    ToolExecutionInterceptor        executes the ToolUse blocks of the last
                                    assistant message, appends the results
    CompleterToolInterceptor(inner) ends the run when a completer tool ran
    LoopInterceptorManager([...])   runs interceptors in configured order
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from agentstream.llm.provider import ToolResult, ToolUse
from agentstream.loop.cancellation import CancellationToken
from agentstream.loop.events import LifecycleEvent, ToolEnd, ToolStart
from agentstream.loop.messages import Message, ToolResultBlock, ToolUseBlock

logger = logging.getLogger(__name__)

ToolExecutor = Callable[[ToolUse], ToolResult | Awaitable[ToolResult]]
EventSink = Callable[[LifecycleEvent], Awaitable[None]]


async def _discard(event: LifecycleEvent) -> None:
    return None


@dataclass
class InterceptorContext:
    """State handed to interceptors once per turn.

    ``messages`` is the run's transcript and is mutated in place (tool
    execution appends the ToolResult message). It belongs to exactly one run.
    """

    messages: list[Message]
    token: CancellationToken = field(default_factory=CancellationToken)
    emit: EventSink = _discard


@dataclass(frozen=True)
class InterceptorResult:
    complete: bool


@runtime_checkable
class LoopInterceptor(Protocol):
    """Protocol for loop interceptors."""

    name: str

    async def intercept(self, context: InterceptorContext) -> InterceptorResult: ...


# ---------------------------------------------------------------------------
# Base layer: tool execution
# ---------------------------------------------------------------------------


class ToolExecutionInterceptor:
    """Execute the tool calls requested by the last assistant message.

    Tools run sequentially in request order, each bracketed by ToolStart /
    ToolEnd events. A failing tool yields an error-flagged result and never
    aborts the chain. All results are appended as one user message.
    """

    name = "tool-execution"

    def __init__(self, tool_executor: ToolExecutor) -> None:
        self._tool_executor = tool_executor

    async def intercept(self, context: InterceptorContext) -> InterceptorResult:
        if not context.messages or context.messages[-1].role != "assistant":
            return InterceptorResult(complete=True)

        tool_uses = context.messages[-1].tool_uses
        if not tool_uses:
            # A plain-text answer always ends the turn.
            return InterceptorResult(complete=True)

        results: list[ToolResultBlock] = []
        for block in tool_uses:
            await context.emit(ToolStart(name=block.name))
            logger.info("tool_call: %s(%s)", block.name, json.dumps(block.args)[:200])
            result = await context.token.guard(self._execute_tool(block))
            if result.is_error:
                logger.warning("Tool '%s' failed: %s", block.name, result.content[:200])
            results.append(
                ToolResultBlock(
                    tool_use_id=block.id,
                    content=result.content,
                    is_error=result.is_error,
                )
            )
            await context.emit(ToolEnd(name=block.name))

        context.messages.append(Message(role="user", content=list(results)))
        return InterceptorResult(complete=False)

    async def _execute_tool(self, block: ToolUseBlock) -> ToolResult:
        """Execute a tool call, handling both sync and async executors."""
        tool_use = ToolUse(id=block.id, name=block.name, input=dict(block.args))
        try:
            result = self._tool_executor(tool_use)
            if asyncio.iscoroutine(result) or asyncio.isfuture(result):
                result = await result
        except Exception as e:
            logger.exception("Tool executor raised for '%s'", block.name)
            return ToolResult(
                tool_use_id=block.id,
                content=json.dumps({"error": str(e)}),
                is_error=True,
            )
        return result


# ---------------------------------------------------------------------------
# Decorator: completer tools
# ---------------------------------------------------------------------------


class CompleterToolInterceptor:
    """
    Stop the run after a "completer" tool has executed.

    Completer tools (like ``ask_user_question``) fully answer the turn on
    their own; another model call would only restate their content. This
    wraps a tool-execution interceptor, lets it run every tool normally, then
    returns ``complete=True`` if any executed tool was a completer.
    """

    name = "completer-tool-execution"

    def __init__(self, inner: LoopInterceptor, completer_tools: Iterable[str]) -> None:
        self._inner = inner
        self._completer_tools = frozenset(completer_tools)

    @property
    def completer_tools(self) -> frozenset[str]:
        return self._completer_tools

    async def intercept(self, context: InterceptorContext) -> InterceptorResult:
        result = await self._inner.intercept(context)

        # No tools were called; nothing to classify.
        if result.complete:
            return result

        # Tool execution appended the ToolResult message, so the assistant
        # message that requested the tools is now second-to-last.
        if len(context.messages) < 2:
            return result

        assistant_msg = context.messages[-2]
        if assistant_msg.role != "assistant":
            return result

        completers = [b.name for b in assistant_msg.tool_uses if b.name in self._completer_tools]
        if completers:
            logger.info("Completer tool(s) %s executed, ending run", completers)
            return InterceptorResult(complete=True)

        return result


# ---------------------------------------------------------------------------
# Chain
# ---------------------------------------------------------------------------


class LoopInterceptorManager:
    """Run interceptors in their configured order.

    The first interceptor that returns ``complete=False`` asks for another
    model call and short-circuits the rest. If every interceptor reports
    ``complete=True`` the run ends.
    """

    def __init__(self, interceptors: list[LoopInterceptor]) -> None:
        self._interceptors = list(interceptors)

    @property
    def names(self) -> list[str]:
        return [i.name for i in self._interceptors]

    async def intercept(self, context: InterceptorContext) -> InterceptorResult:
        for interceptor in self._interceptors:
            result = await interceptor.intercept(context)
            if not result.complete:
                return result
        return InterceptorResult(complete=True)
