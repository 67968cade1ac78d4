"""Turn control: messages, interceptors, cancellation and the run driver."""

from agentstream.loop.cancellation import CancellationToken, RunCancelledError
from agentstream.loop.driver import DriverConfig, RunDriver, RunState
from agentstream.loop.events import (
    Done,
    LifecycleEvent,
    RunError,
    TextDelta,
    ToolEnd,
    ToolStart,
    is_terminal,
)
from agentstream.loop.interceptors import (
    CompleterToolInterceptor,
    InterceptorContext,
    InterceptorResult,
    LoopInterceptor,
    LoopInterceptorManager,
    ToolExecutionInterceptor,
)
from agentstream.loop.messages import (
    ContentBlock,
    Message,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    to_llm_messages,
)

__all__ = [
    "CancellationToken",
    "RunCancelledError",
    "DriverConfig",
    "RunDriver",
    "RunState",
    "Done",
    "LifecycleEvent",
    "RunError",
    "TextDelta",
    "ToolEnd",
    "ToolStart",
    "is_terminal",
    "CompleterToolInterceptor",
    "InterceptorContext",
    "InterceptorResult",
    "LoopInterceptor",
    "LoopInterceptorManager",
    "ToolExecutionInterceptor",
    "ContentBlock",
    "Message",
    "TextBlock",
    "ToolResultBlock",
    "ToolUseBlock",
    "to_llm_messages",
]
