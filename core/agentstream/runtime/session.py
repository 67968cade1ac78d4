"""Process-wide agent session and its lazy, single-flight holder."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from agentstream.config import RuntimeConfig
from agentstream.llm.provider import LLMProvider
from agentstream.loop.driver import DriverConfig, RunDriver
from agentstream.loop.interceptors import (
    CompleterToolInterceptor,
    LoopInterceptorManager,
    ToolExecutionInterceptor,
)
from agentstream.runner.tool_registry import ToolRegistry
from agentstream.tools import register_builtin_tools

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    """Shared, read-only handle to the model client, tools and completer set."""

    provider: LLMProvider
    registry: ToolRegistry
    completer_tools: frozenset[str]
    driver: RunDriver


def create_session(
    provider: LLMProvider,
    registry: ToolRegistry,
    completer_tools: frozenset[str] | set[str] | tuple[str, ...],
    driver_config: DriverConfig | None = None,
) -> Session:
    """Wire the interceptor chain and driver around *provider* and *registry*."""
    completers = frozenset(completer_tools)
    unknown = completers - set(registry.get_registered_names())
    if unknown:
        logger.warning("Completer tools not registered: %s", sorted(unknown))

    chain = LoopInterceptorManager(
        [CompleterToolInterceptor(ToolExecutionInterceptor(registry.execute), completers)]
    )
    driver = RunDriver(provider, chain, registry.get_tools(), driver_config)
    return Session(provider=provider, registry=registry, completer_tools=completers, driver=driver)


async def build_session(
    config: RuntimeConfig | None = None,
    provider: LLMProvider | None = None,
) -> Session:
    """Build the default session: built-in tools plus a LiteLLM provider."""
    config = config or RuntimeConfig()
    if provider is None:
        from agentstream.llm.litellm import LiteLLMProvider

        provider = LiteLLMProvider(
            model=config.model,
            api_key=config.api_key,
            api_base=config.api_base,
            temperature=config.temperature,
        )

    registry = ToolRegistry()
    register_builtin_tools(registry)

    logger.info(
        "Creating agent session: model=%s tools=%s completers=%s",
        provider.model,
        registry.get_registered_names(),
        sorted(config.completer_tools),
    )
    return create_session(
        provider,
        registry,
        config.completer_tools,
        DriverConfig(
            system_prompt=config.system_prompt,
            max_turns=config.max_turns,
            max_tokens=config.max_tokens,
        ),
    )


class SessionHolder:
    """
    Lazily builds one Session and shares it across concurrent requests.

    The first caller of get() starts construction; concurrent callers await
    the same in-flight build instead of starting another. Once built the
    session is reused without reinitialization. A failed build is not cached,
    so the next caller retries.
    """

    def __init__(self, factory: Callable[[], Awaitable[Session]]) -> None:
        self._factory = factory
        self._session: Session | None = None
        self._pending: asyncio.Future[Session] | None = None
        self.build_count = 0

    @property
    def is_ready(self) -> bool:
        return self._session is not None

    async def get(self) -> Session:
        if self._session is not None:
            return self._session

        if self._pending is None:
            self.build_count += 1
            self._pending = asyncio.ensure_future(self._factory())

        pending = self._pending
        try:
            # shield: a cancelled caller must not cancel the shared build
            session = await asyncio.shield(pending)
        except asyncio.CancelledError:
            if pending.cancelled() and self._pending is pending:
                self._pending = None
            raise
        except Exception:
            if self._pending is pending:
                self._pending = None
            raise

        self._session = session
        return session
