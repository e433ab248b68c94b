"""SessionConnection: owns one live audio + tool conversation with the model.

Lifecycle::

    idle -> connecting -> handshaking -> active -> closing -> closed
                 \\             \\           \\          \\
                  +-------------+-----------+----------+--> error

Three activities run concurrently while ``active``: the capture loop
(microphone to outbound queue), the sender draining that queue in order,
and the receive loop feeding playback and the tool dispatcher.  Tool
invocations each run on their own task so a slow tool never stalls audio.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from typing import Any

from ptekit.audio.base import AudioDeviceError, AudioSink, AudioSource
from ptekit.audio.capture import CaptureStream
from ptekit.audio.codec import AudioCodec, AudioCodecError
from ptekit.audio.frame import AudioFrame
from ptekit.audio.playback import PlaybackQueue
from ptekit.core.tasks import TaskTracker
from ptekit.protocol import (
    MediaChunk,
    ProtocolError,
    ServerMessage,
    decode_server_message,
    encode_client_text,
    encode_realtime_input,
    encode_setup,
    encode_tool_response,
)
from ptekit.session.base import TRANSITIONS, Session, SessionState, TurnRole
from ptekit.session.bootstrap import SessionBootstrap, SessionCredential
from ptekit.session.config import SessionConfig
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
from ptekit.session.transport import SessionTransport, TransportError
from ptekit.tools.base import ToolCall, ToolResponse
from ptekit.tools.dispatcher import ToolDispatcher

logger = logging.getLogger("ptekit.session.connection")

# Outbound queue item kinds
_AUDIO = "audio"
_CONTROL = "control"

_INTERNAL_TOOL_ERROR = "Internal error handling tool call"


class ConnectError(Exception):
    """A session could not be established.

    Attributes:
        stage: Where connecting failed: ``state``, ``bootstrap``,
            ``transport``, ``handshake`` or ``device``.
    """

    def __init__(self, message: str, *, stage: str) -> None:
        super().__init__(message)
        self.stage = stage


class TransportFault(Exception):
    """The stream failed after the session became active."""


class _UpstreamError(Exception):
    """The model sent an explicit error envelope."""


class SessionConnection:
    """Bidirectional stream between local audio devices and the model.

    All collaborators are injected so tests can substitute fakes for the
    bootstrap endpoint, the transport and the audio devices.

    Args:
        bootstrap: Provides the short-lived credential and negotiated config.
        transport: The persistent stream to the model.
        source: Microphone adapter.
        sink: Speaker adapter.
        dispatcher: Executes tool calls issued by the model.  Its catalogue
            is declared in the setup message.
        config: Session defaults.
        codec: Audio codec (built from ``config`` rates when omitted).
    """

    def __init__(
        self,
        *,
        bootstrap: SessionBootstrap,
        transport: SessionTransport,
        source: AudioSource,
        sink: AudioSink,
        dispatcher: ToolDispatcher,
        config: SessionConfig | None = None,
        codec: AudioCodec | None = None,
    ) -> None:
        self._config = config or SessionConfig()
        self._bootstrap = bootstrap
        self._transport = transport
        self._source = source
        self._sink = sink
        self._dispatcher = dispatcher
        self._codec = codec or AudioCodec(
            wire_input_rate=self._config.wire_input_rate,
            wire_output_rate=self._config.wire_output_rate,
            playback_rate=self._config.playback_rate,
        )

        self._state = SessionState.IDLE
        self._session: Session | None = None
        self._muted = False
        self._events = SessionEventStream(self._config.event_buffer_size)
        self.last_error: Exception | None = None

        self._capture: CaptureStream | None = None
        self._playback: PlaybackQueue | None = None
        self._outbound: asyncio.Queue[tuple[str, str]] = asyncio.Queue()
        self._pending_chunks: list[MediaChunk] = []
        self._sender_task: asyncio.Task[None] | None = None
        self._receiver_task: asyncio.Task[None] | None = None
        self._teardown_task: asyncio.Task[None] | None = None
        self._tool_tasks = TaskTracker()
        self._pending_calls: dict[str, ToolCall] = {}

        # Diagnostics
        self.envelopes_sent = 0
        self.frames_dropped = 0

    # -- Properties --

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def playback(self) -> PlaybackQueue | None:
        return self._playback

    @property
    def pending_tool_calls(self) -> list[str]:
        """Ids of tool calls that have not been answered yet."""
        return list(self._pending_calls)

    # -- Public API --

    async def connect(self) -> Session:
        """Open a new session and return it once it is active.

        Allowed from ``idle``, ``closed`` and ``error``; every call starts a
        fresh :class:`Session` with a new id.

        Raises:
            ConnectError: If the credential, the stream, the handshake or
                an audio device failed.  The connection is left in ``error``.
        """
        if self._state not in (SessionState.IDLE, SessionState.CLOSED, SessionState.ERROR):
            raise ConnectError(f"Cannot connect while {self._state}", stage="state")

        session = Session(muted=self._muted)
        self._session = session
        self._state = SessionState.IDLE
        self.last_error = None
        self._pending_calls.clear()
        self._pending_chunks.clear()
        self._outbound = asyncio.Queue()
        if self._events.closed:
            self._events = SessionEventStream(self._config.event_buffer_size)

        self._set_state(SessionState.CONNECTING)
        try:
            return await self._establish(session)
        except asyncio.CancelledError:
            if self._session is session and self._state not in (
                SessionState.CLOSED,
                SessionState.ERROR,
            ):
                await self._shutdown(session)
            raise

    async def disconnect(self) -> None:
        """Close the session.  Idempotent; a no-op when nothing is open."""
        teardown = self._teardown_task
        if teardown is not None and not teardown.done():
            await asyncio.shield(teardown)
            return
        session = self._session
        if session is None or self._state in (
            SessionState.IDLE,
            SessionState.CLOSING,
            SessionState.CLOSED,
            SessionState.ERROR,
        ):
            return
        await self._shutdown(session)

    def set_muted(self, muted: bool) -> None:
        """Toggle transmission of captured audio.

        Capture keeps running while muted so device timing stays stable;
        the frames are discarded instead of being sent.
        """
        if muted == self._muted:
            return
        self._muted = muted
        if self._session is not None:
            self._session.muted = muted
        if muted:
            self.frames_dropped += len(self._pending_chunks)
            self._pending_chunks.clear()
        logger.info(
            "Session %s %s",
            self._session.id if self._session else "-",
            "muted" if muted else "unmuted",
        )

    def events(self) -> AsyncIterator[SessionEvent]:
        """Subscribe to lifecycle, turn and error events.

        Each call returns an independent iterator that replays the
        retained history of the current session and then follows new
        events until the session ends.
        """
        return self._events.subscribe()

    async def send_text(self, text: str) -> None:
        """Send a typed user message into the conversation."""
        session = self._session
        if session is None or self._state is not SessionState.ACTIVE:
            raise RuntimeError(f"Cannot send text while {self._state}")
        self._enqueue_control(encode_client_text(text))
        self._append_turn(session, TurnRole.USER, text=text)

    async def drain_tool_calls(self) -> None:
        """Wait until every in-flight tool invocation has finished."""
        await self._tool_tasks.wait()

    # -- Connect stages --

    async def _establish(self, session: Session) -> Session:
        try:
            credential = await self._bootstrap.fetch_credential()
        except Exception as exc:
            raise await self._connect_failed(session, "bootstrap", exc) from exc
        await self._check_connecting(session, SessionState.CONNECTING)

        try:
            await self._transport.open(credential)
        except Exception as exc:
            raise await self._connect_failed(session, "transport", exc) from exc
        await self._check_connecting(session, SessionState.CONNECTING)

        self._negotiate(session, credential)
        self._set_state(SessionState.HANDSHAKING)

        inbound = aiter(self._transport.messages())
        try:
            await self._transport.send(self._build_setup(session))
            first = await asyncio.wait_for(anext(inbound), self._config.handshake_timeout)
            message = decode_server_message(first)
            if message.error is not None:
                raise ProtocolError(f"Setup rejected: {message.error.message or message.error.code}")
        except StopAsyncIteration as exc:
            failure = ConnectionError("Stream closed during handshake")
            raise await self._connect_failed(session, "handshake", failure) from exc
        except TimeoutError as exc:
            failure = TimeoutError(
                f"No setup acknowledgement within {self._config.handshake_timeout}s"
            )
            raise await self._connect_failed(session, "handshake", failure) from exc
        except Exception as exc:
            raise await self._connect_failed(session, "handshake", exc) from exc
        await self._check_connecting(session, SessionState.HANDSHAKING)

        self._set_state(SessionState.ACTIVE)
        try:
            await self._start_audio(session)
        except AudioDeviceError as exc:
            raise await self._connect_failed(session, "device", exc) from exc

        self._sender_task = asyncio.get_running_loop().create_task(
            self._send_loop(session), name=f"session_send:{session.id}"
        )
        # A first message other than setupComplete doubles as the acknowledgement.
        first = message if message.setup_complete is None else None
        self._receiver_task = asyncio.get_running_loop().create_task(
            self._receive_loop(session, inbound, first), name=f"session_recv:{session.id}"
        )
        logger.info(
            "Session %s active: model=%s tools=%d",
            session.id,
            session.model,
            len(self._dispatcher.definitions),
        )
        return session

    async def _check_connecting(self, session: Session, expected: SessionState) -> None:
        """Abort connecting if ``disconnect()`` ran while we were suspended."""
        if self._session is not session or self._state is not expected:
            await self._transport.close()
            raise ConnectError("Connect aborted by disconnect", stage="state")

    async def _connect_failed(self, session: Session, stage: str, exc: Exception) -> ConnectError:
        if self._session is not session or self._state in (
            SessionState.CLOSING,
            SessionState.CLOSED,
        ):
            return ConnectError("Connect aborted by disconnect", stage="state")
        message = f"{stage} failed: {exc}"
        logger.error("Session %s could not connect: %s", session.id, message)
        await self._fail(session, f"connect_{stage}", message, exc)
        return ConnectError(message, stage=stage)

    def _negotiate(self, session: Session, credential: SessionCredential) -> None:
        generation = credential.generation_config or self._config.generation_config()
        session.model = credential.model or self._config.model
        session.config = {
            "model": session.model,
            "generationConfig": generation,
            "systemInstruction": (
                credential.system_instruction or self._config.system_instruction
            ),
        }

    def _build_setup(self, session: Session) -> str:
        return encode_setup(
            model=session.config["model"],
            generation_config=session.config["generationConfig"],
            system_instruction=session.config["systemInstruction"],
            functions=self._dispatcher.declarations(),
        )

    async def _start_audio(self, session: Session) -> None:
        self._playback = PlaybackQueue(
            self._sink,
            max_depth=self._config.max_playback_depth,
            on_backpressure=lambda depth: self._events.publish(
                BackpressureEvent(session_id=session.id, depth=depth)
            ),
        )
        await self._sink.open(self._config.playback_rate)
        await self._playback.start()
        self._capture = CaptureStream(
            self._source,
            self._codec,
            self._on_captured_frame,
            frame_ms=self._config.frame_ms,
            on_error=lambda exc: self._schedule_fault(session, "device", str(exc), exc),
        )
        await self._capture.start(name=f"session_capture:{session.id}")

    # -- State --

    def _set_state(self, state: SessionState) -> None:
        previous = self._state
        if state not in TRANSITIONS[previous]:
            raise RuntimeError(f"Invalid session transition {previous} -> {state}")
        self._state = state
        session = self._session
        if session is None:
            return
        session.state = state
        logger.debug("Session %s: %s -> %s", session.id, previous, state)
        self._events.publish(
            SessionStateEvent(session_id=session.id, previous=previous, state=state)
        )

    # -- Outbound --

    def _on_captured_frame(self, frame: AudioFrame) -> None:
        if self._state is not SessionState.ACTIVE or self._muted:
            self.frames_dropped += 1
            return
        self._pending_chunks.append(self._codec.encode(frame))
        if len(self._pending_chunks) < self._config.frames_per_envelope:
            return
        chunks = self._pending_chunks
        self._pending_chunks = []
        if self._outbound.qsize() >= self._config.outbound_queue_size:
            self.frames_dropped += len(chunks)
            logger.warning(
                "Outbound queue full (%d), dropping %d audio frames",
                self._outbound.qsize(),
                len(chunks),
            )
            return
        self._outbound.put_nowait((_AUDIO, encode_realtime_input(chunks)))

    def _enqueue_control(self, message: str) -> None:
        self._outbound.put_nowait((_CONTROL, message))

    async def _send_loop(self, session: Session) -> None:
        while True:
            kind, message = await self._outbound.get()
            if kind == _AUDIO and (self._state is not SessionState.ACTIVE or self._muted):
                self.frames_dropped += 1
                continue
            try:
                await self._transport.send(message)
            except TransportError as exc:
                self._schedule_fault(session, "transport", str(exc), TransportFault(str(exc)))
                return
            if kind == _AUDIO:
                self.envelopes_sent += 1

    # -- Inbound --

    async def _receive_loop(
        self,
        session: Session,
        inbound: AsyncIterator[str | bytes],
        first: ServerMessage | None = None,
    ) -> None:
        try:
            if first is not None:
                self._handle_message(session, first)
            async for raw in inbound:
                message = decode_server_message(raw)
                self._handle_message(session, message)
        except (ProtocolError, AudioCodecError) as exc:
            logger.error("Malformed message on session %s: %s", session.id, exc)
            self._schedule_fault(session, "protocol", str(exc), exc)
            return
        except TransportError as exc:
            logger.error("Transport fault on session %s: %s", session.id, exc)
            self._schedule_fault(session, "transport", str(exc), TransportFault(str(exc)))
            return
        except _UpstreamError as exc:
            logger.error("Upstream error on session %s: %s", session.id, exc)
            self._schedule_fault(session, "upstream", str(exc), TransportFault(str(exc)))
            return

        if self._session is session and self._state is SessionState.ACTIVE:
            logger.info("Session %s stream closed by peer", session.id)
            self._schedule_teardown(self._shutdown(session))

    def _handle_message(self, session: Session, message: ServerMessage) -> None:
        if message.error is not None:
            raise _UpstreamError(message.error.message or f"code {message.error.code}")

        content = message.server_content
        if content is not None:
            if content.input_transcription is not None and content.input_transcription.text:
                self._append_turn(session, TurnRole.USER, text=content.input_transcription.text)
            if content.model_turn is not None:
                for part in content.model_turn.parts:
                    if part.inline_data is not None:
                        frame = self._codec.decode(part.inline_data)
                        if self._playback is not None:
                            self._playback.enqueue(frame)
                    if part.text:
                        self._append_turn(session, TurnRole.MODEL, text=part.text)
            if content.output_transcription is not None and content.output_transcription.text:
                self._append_turn(session, TurnRole.MODEL, text=content.output_transcription.text)
            if content.turn_complete or content.interrupted:
                self._events.publish(
                    TurnCompleteEvent(session_id=session.id, interrupted=content.interrupted)
                )

        if message.tool_call is not None:
            for fc in message.tool_call.function_calls:
                self._accept_tool_call(session, ToolCall(id=fc.id, name=fc.name, args=fc.args))

        if message.tool_call_cancellation is not None:
            logger.info(
                "Session %s: model cancelled tool calls %s",
                session.id,
                message.tool_call_cancellation.ids,
            )

        if message.go_away is not None:
            logger.warning(
                "Session %s: upstream closing soon (time_left=%s)",
                session.id,
                message.go_away.time_left,
            )
            self._events.publish(
                GoAwayEvent(session_id=session.id, time_left=message.go_away.time_left)
            )

    def _append_turn(self, session: Session, role: TurnRole, **kwargs: Any) -> None:
        turn = session.append_turn(role, **kwargs)
        self._events.publish(TurnEvent(session_id=session.id, turn=turn))

    # -- Tools --

    def _accept_tool_call(self, session: Session, call: ToolCall) -> None:
        if call.id in self._pending_calls:
            logger.warning("Duplicate tool call id %s ignored", call.id)
            return
        self._pending_calls[call.id] = call
        self._append_turn(session, TurnRole.MODEL, tool_call=call)
        self._events.publish(ToolCallEvent(session_id=session.id, call=call))
        self._tool_tasks.spawn(
            self._run_tool(session, call), name=f"session_tool:{session.id}:{call.id}"
        )

    async def _run_tool(self, session: Session, call: ToolCall) -> None:
        try:
            response = await self._dispatcher.handle_call(call)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Error handling tool call %s (%s)", call.name, call.id)
            response = ToolResponse(id=call.id, name=call.name, error=_INTERNAL_TOOL_ERROR)

        if self._session is not session or self._state is not SessionState.ACTIVE:
            logger.debug("Discarding result of tool call %s: session no longer active", call.id)
            return
        if self._pending_calls.pop(call.id, None) is None:
            logger.warning("Tool call %s already answered, dropping duplicate response", call.id)
            return
        self._enqueue_control(encode_tool_response([response.to_function_response()]))
        self._append_turn(session, TurnRole.MODEL, tool_response=response)
        self._events.publish(ToolResponseEvent(session_id=session.id, response=response))

    # -- Teardown --

    def _schedule_teardown(self, coro: Any) -> None:
        if self._teardown_task is not None and not self._teardown_task.done():
            coro.close()
            return
        self._teardown_task = asyncio.get_running_loop().create_task(
            coro, name="session_teardown"
        )

    def _schedule_fault(self, session: Session, code: str, message: str, exc: Exception) -> None:
        if self._session is not session or self._state in (
            SessionState.CLOSED,
            SessionState.ERROR,
        ):
            return
        self._schedule_teardown(self._fail(session, code, message, exc))

    async def _fail(self, session: Session, code: str, message: str, exc: Exception) -> None:
        """Move to ``error``, surface the fault and release everything."""
        if self._session is not session or self._state in (
            SessionState.CLOSED,
            SessionState.ERROR,
        ):
            return
        self.last_error = exc
        self._set_state(SessionState.ERROR)
        self._events.publish(SessionErrorEvent(session_id=session.id, code=code, message=message))
        await self._release(session)
        self._events.close()

    async def _shutdown(self, session: Session) -> None:
        """Orderly close: ``closing`` -> release -> ``closed``."""
        if self._session is not session or SessionState.CLOSING not in TRANSITIONS[self._state]:
            return
        self._set_state(SessionState.CLOSING)
        await self._release(session)
        if self._state is SessionState.CLOSING:
            self._set_state(SessionState.CLOSED)
        self._events.close()

    async def _release(self, session: Session) -> None:
        """Stop every activity and release devices and the transport.

        Each step runs even if an earlier one fails, so a partial
        failure never leaks the microphone or leaves the stream open.
        """
        current = asyncio.current_task()

        capture, self._capture = self._capture, None
        if capture is not None:
            try:
                await capture.stop()
            except Exception:
                logger.exception("Error stopping capture for session %s", session.id)
        else:
            with contextlib.suppress(Exception):
                await self._source.close()

        await self._tool_tasks.cancel_all()
        unanswered = len(self._pending_calls)
        self._pending_calls.clear()

        playback, self._playback = self._playback, None
        played = 0
        if playback is not None:
            played = playback.played
            try:
                await playback.stop(discard=True)
            except Exception:
                logger.exception("Error stopping playback for session %s", session.id)
        try:
            await self._sink.close()
        except Exception:
            logger.exception("Error closing audio sink for session %s", session.id)

        for attr in ("_sender_task", "_receiver_task"):
            task = getattr(self, attr)
            setattr(self, attr, None)
            if task is None or task is current:
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
        self._pending_chunks.clear()
        while not self._outbound.empty():
            self._outbound.get_nowait()

        try:
            await self._transport.close()
        except Exception:
            logger.exception("Error closing transport for session %s", session.id)

        logger.info(
            "Session %s released: sent=%d dropped=%d played=%d unanswered_tools=%d",
            session.id,
            self.envelopes_sent,
            self.frames_dropped,
            played,
            unanswered,
        )
