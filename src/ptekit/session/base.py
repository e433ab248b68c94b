"""Base models for live study-assistant sessions."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum, unique
from typing import Any

from ptekit.tools.base import ToolCall, ToolResponse


@unique
class SessionState(StrEnum):
    """Lifecycle state of a live session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"
    ERROR = "error"


# Allowed transitions; ``error`` is reachable from every non-terminal state.
TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.CONNECTING, SessionState.ERROR}),
    SessionState.CONNECTING: frozenset(
        {SessionState.HANDSHAKING, SessionState.CLOSING, SessionState.ERROR}
    ),
    SessionState.HANDSHAKING: frozenset(
        {SessionState.ACTIVE, SessionState.CLOSING, SessionState.ERROR}
    ),
    SessionState.ACTIVE: frozenset({SessionState.CLOSING, SessionState.ERROR}),
    SessionState.CLOSING: frozenset({SessionState.CLOSED, SessionState.ERROR}),
    SessionState.CLOSED: frozenset(),
    SessionState.ERROR: frozenset(),
}


@unique
class TurnRole(StrEnum):
    USER = "user"
    MODEL = "model"


def _utcnow() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def _new_session_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Turn:
    """One exchange within a session.  Immutable once appended."""

    index: int
    role: TurnRole
    text: str | None = None
    tool_call: ToolCall | None = None
    tool_response: ToolResponse | None = None
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class Session:
    """A live bidirectional audio and tool conversation with the model.

    Owned by a single :class:`~ptekit.session.connection.SessionConnection`
    for its lifetime.  Reconnecting always creates a new ``Session`` with
    a fresh ``id``.
    """

    id: str = field(default_factory=_new_session_id)
    state: SessionState = SessionState.IDLE
    model: str | None = None
    config: dict[str, Any] = field(default_factory=dict)
    muted: bool = False
    turns: list[Turn] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)
    metadata: dict[str, Any] = field(default_factory=dict)

    def append_turn(
        self,
        role: TurnRole,
        *,
        text: str | None = None,
        tool_call: ToolCall | None = None,
        tool_response: ToolResponse | None = None,
    ) -> Turn:
        turn = Turn(
            index=len(self.turns),
            role=role,
            text=text,
            tool_call=tool_call,
            tool_response=tool_response,
        )
        self.turns.append(turn)
        return turn
