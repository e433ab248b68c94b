"""Wire envelopes for the live session stream.

Every message is a JSON object with a single top-level key naming the
envelope.  Field names on the wire are camelCase; inbound parsing also
accepts the snake_case spelling some clients and proxies emit.

Outbound: ``setup`` (exactly once, first), ``realtimeInput``,
``toolResponse``, ``clientContent``.
Inbound: ``setupComplete``, ``serverContent``, ``toolCall``,
``toolCallCancellation``, ``goAway``, ``error``.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel


class ProtocolError(ValueError):
    """An inbound message is not valid JSON or not a known envelope."""


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, protected_namespaces=()
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# -- Shared --


class MediaChunk(_WireModel):
    """Base64-encoded media payload with an explicit mime type."""

    data: str
    mime_type: str


class Part(_WireModel):
    text: str | None = None
    inline_data: MediaChunk | None = None


class Content(_WireModel):
    role: str | None = None
    parts: list[Part] = Field(default_factory=list)


# -- Outbound --


class FunctionDeclaration(_WireModel):
    name: str
    description: str
    parameters: dict[str, Any] | None = None


class ToolDeclarations(_WireModel):
    function_declarations: list[FunctionDeclaration] = Field(default_factory=list)


class SetupPayload(_WireModel):
    model: str
    generation_config: dict[str, Any] = Field(default_factory=dict)
    system_instruction: Content | None = None
    tools: list[ToolDeclarations] = Field(default_factory=list)


class RealtimeInputPayload(_WireModel):
    media_chunks: list[MediaChunk]


class FunctionResponse(_WireModel):
    id: str
    name: str
    response: dict[str, Any]


class ToolResponsePayload(_WireModel):
    function_responses: list[FunctionResponse]


class ClientContentPayload(_WireModel):
    turns: list[Content]
    turn_complete: bool = True


def _envelope(key: str, payload: _WireModel) -> str:
    return json.dumps({key: payload.to_wire()})


def encode_setup(
    *,
    model: str,
    generation_config: dict[str, Any] | None = None,
    system_instruction: str | None = None,
    functions: list[FunctionDeclaration] | None = None,
) -> str:
    """Build the ``setup`` envelope declaring model, config and tool catalogue."""
    payload = SetupPayload(
        model=model,
        generation_config=generation_config or {},
        system_instruction=(
            Content(parts=[Part(text=system_instruction)]) if system_instruction else None
        ),
        tools=[ToolDeclarations(function_declarations=functions)] if functions else [],
    )
    return _envelope("setup", payload)


def encode_realtime_input(chunks: list[MediaChunk]) -> str:
    return _envelope("realtimeInput", RealtimeInputPayload(media_chunks=chunks))


def encode_tool_response(responses: list[FunctionResponse]) -> str:
    return _envelope("toolResponse", ToolResponsePayload(function_responses=responses))


def encode_client_text(text: str) -> str:
    payload = ClientContentPayload(turns=[Content(role="user", parts=[Part(text=text)])])
    return _envelope("clientContent", payload)


# -- Inbound --


class Transcription(_WireModel):
    text: str = ""


class ServerContent(_WireModel):
    model_turn: Content | None = None
    turn_complete: bool = False
    interrupted: bool = False
    input_transcription: Transcription | None = None
    output_transcription: Transcription | None = None


class FunctionCall(_WireModel):
    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolCallPayload(_WireModel):
    function_calls: list[FunctionCall] = Field(default_factory=list)


class ToolCallCancellation(_WireModel):
    ids: list[str] = Field(default_factory=list)


class GoAway(_WireModel):
    time_left: str | None = None


class ServerError(_WireModel):
    code: int | None = None
    message: str = ""


class ServerMessage(_WireModel):
    """One inbound message; exactly the envelopes present are set."""

    setup_complete: dict[str, Any] | None = None
    server_content: ServerContent | None = None
    tool_call: ToolCallPayload | None = None
    tool_call_cancellation: ToolCallCancellation | None = None
    go_away: GoAway | None = None
    error: ServerError | None = None


def decode_server_message(raw: str | bytes) -> ServerMessage:
    """Parse one inbound frame.

    Raises:
        ProtocolError: If the frame is not a JSON object or an envelope
            has the wrong shape.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ProtocolError(f"Invalid JSON from upstream: {exc}") from exc
    if not isinstance(data, dict):
        raise ProtocolError(f"Expected a JSON object, got {type(data).__name__}")
    try:
        return ServerMessage.model_validate(data)
    except ValidationError as exc:
        raise ProtocolError(f"Malformed server message: {exc}") from exc
