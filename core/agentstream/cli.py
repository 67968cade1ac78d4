"""
Command-line interface for agentstream.

Usage:
    agentstream serve
    agentstream serve --port 9000 --model openai/gpt-4o-mini
    agentstream serve --mock --log-format human
"""

import argparse
import asyncio
import logging
import sys

logger = logging.getLogger(__name__)


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    """Register the ``serve`` command."""
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the task server",
        description="Accept POST /task requests and stream agent runs as SSE.",
    )
    serve_parser.add_argument("--host", default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port")
    serve_parser.add_argument("--model", default=None, help="LiteLLM model identifier")
    serve_parser.add_argument(
        "--mock",
        action="store_true",
        help="Use the scripted mock provider instead of a real model",
    )
    serve_parser.add_argument("--log-level", default="INFO")
    serve_parser.add_argument(
        "--log-format",
        choices=["json", "human", "auto"],
        default="auto",
    )
    serve_parser.set_defaults(func=cmd_serve)


def cmd_serve(args: argparse.Namespace) -> int:
    from agentstream.config import RuntimeConfig, ServerConfig
    from agentstream.observability import configure_logging

    configure_logging(level=args.log_level, format=args.log_format)

    runtime_config = RuntimeConfig()
    if args.model:
        runtime_config.model = args.model

    server_config = ServerConfig()
    if args.host:
        server_config.host = args.host
    if args.port is not None:
        server_config.port = args.port

    try:
        asyncio.run(_serve(runtime_config, server_config, mock=args.mock))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    return 0


async def _serve(runtime_config, server_config, mock: bool = False) -> None:
    from agentstream.llm.mock import MockLLMProvider
    from agentstream.runtime import SessionHolder, TaskServer, build_session

    provider = MockLLMProvider() if mock else None
    sessions = SessionHolder(lambda: build_session(runtime_config, provider=provider))
    server = TaskServer(sessions, server_config)

    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


def main():
    parser = argparse.ArgumentParser(
        prog="agentstream",
        description="agentstream - stream tool-using agent runs over SSE",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args()

    if hasattr(args, "func"):
        sys.exit(args.func(args))


if __name__ == "__main__":
    main()
