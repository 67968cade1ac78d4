"""Runtime: session lifecycle, event streaming and the HTTP surface."""

from agentstream.runtime.channel import EventChannel
from agentstream.runtime.conversations import ConversationStore
from agentstream.runtime.server import TaskRequest, TaskServer
from agentstream.runtime.session import Session, SessionHolder, build_session, create_session
from agentstream.runtime.translator import encode_sse, translate
from agentstream.runtime.transport import SSETransport

__all__ = [
    "EventChannel",
    "ConversationStore",
    "TaskRequest",
    "TaskServer",
    "Session",
    "SessionHolder",
    "build_session",
    "create_session",
    "encode_sse",
    "translate",
    "SSETransport",
]
