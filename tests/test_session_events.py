"""Tests for SessionEventStream and the session data model."""

from __future__ import annotations

import asyncio

import pytest

from ptekit.session.base import TRANSITIONS, Session, SessionState, TurnRole
from ptekit.session.events import SessionErrorEvent, SessionEventStream, TurnCompleteEvent
from ptekit.tools.base import ToolCall


def _event(i: int) -> TurnCompleteEvent:
    return TurnCompleteEvent(session_id=f"s{i}")


class TestSessionEventStream:
    async def test_replays_history_then_ends_on_close(self) -> None:
        stream = SessionEventStream(maxlen=10)
        for i in range(3):
            stream.publish(_event(i))
        stream.close()
        received = [e.session_id async for e in stream.subscribe()]
        assert received == ["s0", "s1", "s2"]

    async def test_follows_live_events(self, advance) -> None:
        stream = SessionEventStream()
        received: list[str] = []

        async def consume() -> None:
            async for event in stream.subscribe():
                received.append(event.session_id)

        task = asyncio.create_task(consume())
        await advance()
        stream.publish(_event(1))
        await advance()
        stream.publish(_event(2))
        stream.close()
        await task
        assert received == ["s1", "s2"]

    async def test_independent_subscribers(self) -> None:
        stream = SessionEventStream()
        stream.publish(_event(1))
        stream.close()
        first = [e async for e in stream.subscribe()]
        second = [e async for e in stream.subscribe()]
        assert first == second

    async def test_overwrites_oldest(self) -> None:
        stream = SessionEventStream(maxlen=3)
        for i in range(5):
            stream.publish(_event(i))
        assert [e.session_id for e in stream.history()] == ["s2", "s3", "s4"]

    async def test_lagging_subscriber_skips_ahead(self, advance) -> None:
        stream = SessionEventStream(maxlen=2)
        stream.publish(_event(0))
        iterator = stream.subscribe()
        assert (await anext(iterator)).session_id == "s0"
        for i in range(1, 6):
            stream.publish(_event(i))
        stream.close()
        rest = [e.session_id async for e in iterator]
        assert rest == ["s4", "s5"]
        assert stream.dropped == 3

    async def test_publish_after_close_ignored(self) -> None:
        stream = SessionEventStream()
        stream.close()
        stream.publish(SessionErrorEvent(session_id="s", code="x", message="y"))
        assert len(stream) == 0

    def test_invalid_maxlen(self) -> None:
        with pytest.raises(ValueError):
            SessionEventStream(maxlen=0)


class TestSessionModel:
    def test_terminal_states(self) -> None:
        assert TRANSITIONS[SessionState.CLOSED] == frozenset()
        assert TRANSITIONS[SessionState.ERROR] == frozenset()

    def test_error_reachable_from_every_live_state(self) -> None:
        for state in (
            SessionState.IDLE,
            SessionState.CONNECTING,
            SessionState.HANDSHAKING,
            SessionState.ACTIVE,
            SessionState.CLOSING,
        ):
            assert SessionState.ERROR in TRANSITIONS[state]

    def test_active_only_from_handshaking(self) -> None:
        sources = [s for s, targets in TRANSITIONS.items() if SessionState.ACTIVE in targets]
        assert sources == [SessionState.HANDSHAKING]

    def test_turns_are_indexed(self) -> None:
        session = Session()
        session.append_turn(TurnRole.USER, text="hello")
        turn = session.append_turn(
            TurnRole.MODEL, tool_call=ToolCall(id="c", name="getUserWeakAreas")
        )
        assert turn.index == 1
        assert session.turns[0].text == "hello"

    def test_unique_ids(self) -> None:
        assert Session().id != Session().id
