"""Live study-assistant session: state machine, protocol and transport."""

from ptekit.session.base import Session, SessionState, Turn, TurnRole
from ptekit.session.bootstrap import (
    BootstrapError,
    HTTPSessionBootstrap,
    SessionBootstrap,
    SessionCredential,
    StaticSessionBootstrap,
)
from ptekit.session.config import SessionConfig
from ptekit.session.connection import ConnectError, SessionConnection, TransportFault
from ptekit.session.events import (
    BackpressureEvent,
    GoAwayEvent,
    SessionErrorEvent,
    SessionEvent,
    SessionEventStream,
    SessionStateEvent,
    ToolCallEvent,
    ToolResponseEvent,
    TurnCompleteEvent,
    TurnEvent,
)
from ptekit.session.mock import MockSessionBootstrap, MockSessionTransport
from ptekit.session.transport import (
    GEMINI_LIVE_URL,
    SessionTransport,
    TransportError,
    WebSocketSessionTransport,
)

__all__ = [
    # Core types
    "Session",
    "SessionConfig",
    "SessionConnection",
    "SessionState",
    "Turn",
    "TurnRole",
    # Errors
    "BootstrapError",
    "ConnectError",
    "TransportError",
    "TransportFault",
    # Bootstrap and transport
    "GEMINI_LIVE_URL",
    "HTTPSessionBootstrap",
    "SessionBootstrap",
    "SessionCredential",
    "SessionTransport",
    "StaticSessionBootstrap",
    "WebSocketSessionTransport",
    # Events
    "BackpressureEvent",
    "GoAwayEvent",
    "SessionErrorEvent",
    "SessionEvent",
    "SessionEventStream",
    "SessionStateEvent",
    "ToolCallEvent",
    "ToolResponseEvent",
    "TurnCompleteEvent",
    "TurnEvent",
    # Mocks
    "MockSessionBootstrap",
    "MockSessionTransport",
]
