"""RunDriver: turn loop that alternates model calls and interceptor passes.

State machine::

    TURN --model call--> AWAITING_MODEL --assistant message--> interceptors
      ^                                                            |
      +------------------- complete=False -------------------------+
                                                                   |
                          complete=True --> COMPLETE (emit Done)   |
    model failure / turn limit / internal error --> ABORTED (emit RunError)

Exactly one terminal event is emitted per run. A cancelled run (client gone)
ends ABORTED without emitting anything further.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from dataclasses import dataclass
from enum import StrEnum

from agentstream.llm.provider import LLMProvider, LLMProviderError, Tool
from agentstream.llm.stream_events import (
    FinishEvent,
    StreamErrorEvent,
    StreamEvent,
    TextDeltaEvent,
    ToolCallEvent,
)
from agentstream.loop.cancellation import CancellationToken, RunCancelledError
from agentstream.loop.events import Done, LifecycleEvent, RunError, TextDelta
from agentstream.loop.interceptors import InterceptorContext, LoopInterceptor
from agentstream.loop.messages import (
    ContentBlock,
    Message,
    TextBlock,
    ToolUseBlock,
    to_llm_messages,
)

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An error occurred while processing your request"


class RunState(StrEnum):
    TURN = "turn"
    AWAITING_MODEL = "awaiting_model"
    COMPLETE = "complete"
    ABORTED = "aborted"


class TurnLimitExceededError(Exception):
    """Raised when a run needs more model calls than allowed."""


@dataclass
class DriverConfig:
    """Configuration for the run driver."""

    system_prompt: str = ""
    max_turns: int = 25
    max_tokens: int = 4096


class RunDriver:
    """
    Drive one run from a user message to a terminal lifecycle event.

    The driver is stateless between runs and safe to share: all per-run state
    lives in the transcript list and local variables of ``run()``.

    Example:
        driver = RunDriver(provider, interceptor_chain, tools)
        state = await driver.run(messages, "Hi", emit=channel.send, token=token)
    """

    def __init__(
        self,
        provider: LLMProvider,
        interceptor: LoopInterceptor,
        tools: list[Tool] | None = None,
        config: DriverConfig | None = None,
    ) -> None:
        self._provider = provider
        self._interceptor = interceptor
        self._tools = list(tools or [])
        self._config = config or DriverConfig()

    async def run(
        self,
        messages: list[Message],
        user_message: str,
        emit: Callable[[LifecycleEvent], Awaitable[None]],
        token: CancellationToken | None = None,
    ) -> RunState:
        """Execute a run, appending to *messages* and emitting lifecycle events.

        Args:
            messages: The run's transcript. Prior history may be present; the
                user message is appended before the first model call.
            user_message: Text of the user's request.
            emit: Async sink receiving lifecycle events in production order.
            token: Cancellation signal checked at every suspension point.

        Returns:
            The terminal state, COMPLETE or ABORTED.
        """
        token = token or CancellationToken()
        context = InterceptorContext(messages=messages, token=token, emit=emit)
        context.messages.append(Message.user_text(user_message))

        state = RunState.TURN
        turns = 0
        started = time.monotonic()

        try:
            while state is RunState.TURN:
                if turns >= self._config.max_turns:
                    raise TurnLimitExceededError(f"Turn limit exceeded ({self._config.max_turns})")
                turns += 1

                state = RunState.AWAITING_MODEL
                assistant = await self._call_model(context)
                context.messages.append(assistant)

                token.raise_if_cancelled()
                result = await self._interceptor.intercept(context)
                state = RunState.COMPLETE if result.complete else RunState.TURN

        except RunCancelledError as e:
            logger.info("Run cancelled after %d turn(s): %s", turns, e)
            return RunState.ABORTED

        except LLMProviderError as e:
            logger.error("Model call failed on turn %d: %s", turns, e)
            return await self._finish(emit, RunError(message=str(e)), RunState.ABORTED)

        except TurnLimitExceededError as e:
            logger.warning("%s", e)
            return await self._finish(
                emit, RunError(message="Turn limit exceeded"), RunState.ABORTED
            )

        except Exception:
            logger.exception("Run failed on turn %d", turns)
            return await self._finish(
                emit, RunError(message=GENERIC_ERROR_MESSAGE), RunState.ABORTED
            )

        logger.info(
            "Run complete: turns=%d latency_ms=%d",
            turns,
            int((time.monotonic() - started) * 1000),
        )
        return await self._finish(emit, Done(), state)

    async def _finish(
        self,
        emit: Callable[[LifecycleEvent], Awaitable[None]],
        event: LifecycleEvent,
        state: RunState,
    ) -> RunState:
        """Emit the terminal event. A run whose terminal event cannot be delivered is ABORTED."""
        try:
            await emit(event)
        except RunCancelledError as e:
            logger.info("Run cancelled before '%s' was delivered: %s", event.type, e)
            return RunState.ABORTED
        return state

    async def _model_events(self, context: InterceptorContext) -> AsyncIterator[StreamEvent]:
        """Yield the provider's events for one response.

        Failures raised by the provider while producing events become
        LLMProviderError. Errors in the caller's handling of an event are not
        touched.
        """
        try:
            stream = self._provider.stream(
                messages=to_llm_messages(context.messages),
                system=self._config.system_prompt,
                tools=self._tools or None,
                max_tokens=self._config.max_tokens,
            )
            events = context.token.iterate(stream)
        except Exception as e:
            raise LLMProviderError(f"LLM completion failed: {e}") from e

        async with aclosing(events):
            while True:
                try:
                    event = await anext(events)
                except StopAsyncIteration:
                    return
                except (RunCancelledError, LLMProviderError):
                    raise
                except Exception as e:
                    raise LLMProviderError(f"LLM completion failed: {e}") from e
                yield event

    async def _call_model(self, context: InterceptorContext) -> Message:
        """Stream one model response, emitting text deltas as they arrive."""
        text = ""
        tool_uses: list[ToolUseBlock] = []

        async with aclosing(self._model_events(context)) as events:
            async for event in events:
                if isinstance(event, TextDeltaEvent):
                    if event.content:
                        text += event.content
                        await context.emit(TextDelta(text=event.content))

                elif isinstance(event, ToolCallEvent):
                    tool_uses.append(
                        ToolUseBlock(
                            id=event.tool_use_id,
                            name=event.tool_name,
                            args=dict(event.tool_input),
                        )
                    )

                elif isinstance(event, FinishEvent):
                    logger.debug(
                        "Model finished: stop_reason=%s tokens_in=%d tokens_out=%d",
                        event.stop_reason,
                        event.input_tokens,
                        event.output_tokens,
                    )

                elif isinstance(event, StreamErrorEvent):
                    if not event.recoverable:
                        raise LLMProviderError(f"Stream error: {event.error}")
                    logger.warning("Recoverable stream error: %s", event.error)

        logger.info(
            "LLM response: text=%r tool_calls=%s",
            text[:300] if text else "(empty)",
            [b.name for b in tool_uses],
        )

        content: list[ContentBlock] = [TextBlock(text=text)] if text else []
        content.extend(tool_uses)
        return Message(role="assistant", content=content)
