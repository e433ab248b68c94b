"""Session event types and the per-session event stream."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import UTC, datetime

from ptekit.session.base import SessionState, Turn
from ptekit.tools.base import ToolCall, ToolResponse

logger = logging.getLogger("ptekit.session.events")


def _utcnow() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class SessionStateEvent:
    """The session moved to a new lifecycle state."""

    session_id: str
    previous: SessionState
    state: SessionState
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class TurnEvent:
    """A turn was appended to the session transcript."""

    session_id: str
    turn: Turn
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ToolCallEvent:
    """The model requested a tool call."""

    session_id: str
    call: ToolCall
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ToolResponseEvent:
    """A tool response was sent back to the model."""

    session_id: str
    response: ToolResponse
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class TurnCompleteEvent:
    """The model finished its turn."""

    session_id: str
    interrupted: bool = False
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class BackpressureEvent:
    """Inbound audio is arriving faster than it can be played."""

    session_id: str
    depth: int
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class GoAwayEvent:
    """The upstream announced it will close the stream soon."""

    session_id: str
    time_left: str | None = None
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class SessionErrorEvent:
    """The session failed and is being torn down."""

    session_id: str
    code: str
    message: str
    timestamp: datetime = field(default_factory=_utcnow)


SessionEvent = (
    SessionStateEvent
    | TurnEvent
    | ToolCallEvent
    | ToolResponseEvent
    | TurnCompleteEvent
    | BackpressureEvent
    | GoAwayEvent
    | SessionErrorEvent
)


class SessionEventStream:
    """Bounded, replayable event log for one session.

    Events are kept in a ring buffer of ``maxlen`` entries; when full, the
    oldest entry is overwritten.  Every call to :meth:`subscribe` returns
    an independent iterator that starts at the oldest retained event and
    follows new ones until the stream is closed.  A subscriber that falls
    so far behind that its next event was overwritten skips ahead to the
    oldest retained one; the skipped count is added to ``dropped``.
    """

    def __init__(self, maxlen: int = 512) -> None:
        if maxlen < 1:
            raise ValueError(f"maxlen must be >= 1, got {maxlen}")
        self._buffer: deque[SessionEvent] = deque(maxlen=maxlen)
        self._next_seq = 0
        self._closed = False
        self._wakeup = asyncio.Event()
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._buffer)

    def history(self) -> list[SessionEvent]:
        """Snapshot of the retained events, oldest first."""
        return list(self._buffer)

    def publish(self, event: SessionEvent) -> None:
        if self._closed:
            logger.debug("Dropping %s published after close", type(event).__name__)
            return
        self._buffer.append(event)
        self._next_seq += 1
        self._notify()

    def close(self) -> None:
        """End every subscription once it has read the retained events."""
        self._closed = True
        self._notify()

    def _notify(self) -> None:
        wakeup = self._wakeup
        self._wakeup = asyncio.Event()
        wakeup.set()

    async def subscribe(self) -> AsyncIterator[SessionEvent]:
        cursor = self._next_seq - len(self._buffer)
        while True:
            oldest = self._next_seq - len(self._buffer)
            if cursor < oldest:
                skipped = oldest - cursor
                self.dropped += skipped
                logger.warning("Event subscriber fell behind, %d events skipped", skipped)
                cursor = oldest
            if cursor < self._next_seq:
                event = self._buffer[cursor - oldest]
                cursor += 1
                yield event
                continue
            if self._closed:
                return
            await self._wakeup.wait()
