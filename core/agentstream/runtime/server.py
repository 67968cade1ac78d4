"""
Task HTTP Server - accepts user requests and streams agent runs as SSE.

Routes:
    POST /task     {"message": str, "conversation_id"?: str} -> text/event-stream
    GET  /health   -> 200 "ok"

Uses aiohttp so the server runs inside the existing asyncio loop. Handler
cancellation is enabled: when a client disconnects mid-stream aiohttp cancels
the handler, which cancels the in-flight run through its CancellationToken.
"""

import asyncio
import json
import logging
import uuid

from aiohttp import web
from pydantic import BaseModel, ValidationError, field_validator

from agentstream.config import ServerConfig
from agentstream.loop.cancellation import CancellationToken
from agentstream.loop.driver import RunState
from agentstream.observability import set_trace_context
from agentstream.runtime.channel import EventChannel
from agentstream.runtime.conversations import ConversationStore
from agentstream.runtime.session import Session, SessionHolder
from agentstream.runtime.transport import SSETransport

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Accept",
}

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


class TaskRequest(BaseModel):
    """Body of POST /task."""

    message: str
    conversation_id: str | None = None

    @field_validator("message")
    @classmethod
    def _message_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("message is required")
        return value


def _validation_message(error: ValidationError) -> str:
    for detail in error.errors():
        if detail.get("loc", ())[:1] == ("conversation_id",):
            return "conversation_id must be a string"
    return "message is required"


def _json_error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status, headers=CORS_HEADERS)


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Turn unexpected exceptions raised before a stream opens into a generic 500."""
    try:
        return await handler(request)
    except web.HTTPNotFound:
        return _json_error("Not found", 404)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception("Unhandled error in %s %s", request.method, request.path)
        return _json_error("Internal server error", 500)


class TaskServer:
    """
    Embedded HTTP server that runs one agent run per POST /task request.

    Lifecycle:
        server = TaskServer(SessionHolder(build_session), config)
        await server.start()
        # ... server running ...
        await server.stop()
    """

    def __init__(
        self,
        sessions: SessionHolder,
        config: ServerConfig | None = None,
        conversations: ConversationStore | None = None,
    ):
        self._sessions = sessions
        self._config = config or ServerConfig()
        self._conversations = conversations or ConversationStore(
            max_conversations=self._config.max_conversations
        )
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    @property
    def conversations(self) -> ConversationStore:
        return self._conversations

    def create_app(self) -> web.Application:
        app = web.Application(middlewares=[error_middleware])
        app.router.add_post("/task", self._handle_task)
        app.router.add_route("OPTIONS", "/task", self._handle_preflight)
        app.router.add_get("/health", self._handle_health)
        return app

    async def start(self) -> None:
        """Start the HTTP server."""
        self._app = self.create_app()
        self._runner = web.AppRunner(self._app, handler_cancellation=True)
        await self._runner.setup()
        self._site = web.TCPSite(
            self._runner,
            self._config.host,
            self._config.port,
        )
        await self._site.start()
        logger.info(f"Task server started on {self._config.host}:{self.port}")

    async def stop(self) -> None:
        """Stop the HTTP server gracefully."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._app = None
            self._site = None
            logger.info("Task server stopped")

    @property
    def is_running(self) -> bool:
        """Check if the server is running."""
        return self._site is not None

    @property
    def port(self) -> int | None:
        """Return the actual listening port (useful when configured with port=0)."""
        if self._site and self._site._server and self._site._server.sockets:
            return self._site._server.sockets[0].getsockname()[1]
        return None

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.Response(text="ok", headers=CORS_HEADERS)

    async def _handle_preflight(self, request: web.Request) -> web.Response:
        return web.Response(status=204, headers=CORS_HEADERS)

    async def _handle_task(self, request: web.Request) -> web.StreamResponse:
        """Validate the request, then stream one run as SSE."""
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError, ValueError):
            body = None

        if not isinstance(body, dict):
            return _json_error("message is required", 400)

        try:
            task = TaskRequest.model_validate(body)
        except ValidationError as e:
            return _json_error(_validation_message(e), 400)

        session = await self._sessions.get()

        conversation_id = task.conversation_id or self._conversations.new_id()
        run_id = uuid.uuid4().hex
        set_trace_context(run_id=run_id, conversation_id=conversation_id)

        # Runs on one conversation are serialized so each sees the last one's commit
        async with self._conversations.lock(conversation_id):
            return await self._stream_run(request, session, conversation_id, task.message)

    async def _stream_run(
        self,
        request: web.Request,
        session: Session,
        conversation_id: str,
        message: str,
    ) -> web.StreamResponse:
        """Open the SSE response and pump one run into it."""
        history = self._conversations.snapshot(conversation_id)
        messages = list(history)

        response = web.StreamResponse(
            status=200,
            headers={**SSE_HEADERS, **CORS_HEADERS, "X-Conversation-Id": conversation_id},
        )
        try:
            await response.prepare(request)
        except ConnectionError as e:
            logger.info("Client went away before the stream opened: %s", e)
            return response

        token = CancellationToken()
        channel = EventChannel(token)
        transport = SSETransport(response, token)

        async def produce() -> RunState:
            try:
                return await session.driver.run(messages, message, channel.send, token)
            finally:
                channel.close()

        logger.info("Run started (history=%d messages)", len(history))
        producer = asyncio.create_task(produce())
        try:
            await transport.pump(channel)
        except asyncio.CancelledError:
            token.cancel("client disconnected")
            raise
        finally:
            if not producer.done() and not transport.terminal_sent:
                token.cancel("stream closed")
            await asyncio.wait({producer})

        state = RunState.ABORTED
        if producer.cancelled():
            logger.warning("Run task was cancelled")
        elif producer.exception() is not None:
            logger.error("Run task crashed", exc_info=producer.exception())
        else:
            state = producer.result()
        if state is RunState.COMPLETE:
            self._conversations.append(conversation_id, messages[len(history) :])
        logger.info("Run finished: state=%s frames=%d", state, transport.frames_sent)
        return response
