"""Live session configuration."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

DEFAULT_SYSTEM_INSTRUCTION = (
    "You are a helpful PTE Academic assistant. "
    "You can help students with their preparation, check their stats, "
    "and find practice questions. "
    "Use the provided tools to interact with the database. "
    "Keep your responses concise and focused on the student's needs. "
    "Speak naturally and encouragingly."
)


class SessionConfig(BaseModel):
    """Defaults for a live session.

    Values negotiated by the bootstrap endpoint (model, generation config,
    system instruction) take precedence over the ones here.
    """

    model: str = "models/gemini-2.0-flash-exp"
    voice: str = "Puck"
    system_instruction: str = DEFAULT_SYSTEM_INSTRUCTION
    response_modalities: list[str] = Field(default_factory=lambda: ["AUDIO"])

    # Audio formats
    wire_input_rate: int = 16000
    wire_output_rate: int = 24000
    playback_rate: int = 24000
    frame_ms: int = Field(default=128, gt=0)
    frames_per_envelope: int = Field(default=1, ge=1)

    # Buffers
    max_playback_depth: int = Field(default=256, ge=1)
    event_buffer_size: int = Field(default=512, ge=1)
    outbound_queue_size: int = Field(default=64, ge=1)

    # Timeouts
    handshake_timeout: float = Field(default=10.0, gt=0.0)
    close_timeout: float = Field(default=2.0, gt=0.0)

    # Tools
    max_concurrent_tools: int = Field(default=4, ge=1)
    tool_timeout: float | None = 30.0
    tool_result_max_length: int = Field(default=16384, ge=64)

    @field_validator("wire_input_rate", "wire_output_rate", "playback_rate")
    @classmethod
    def validate_rate(cls, v: int) -> int:
        if v <= 0 or v > 192_000:
            raise ValueError(f"sample rate must be between 1 and 192000, got {v}")
        return v

    def generation_config(self) -> dict[str, Any]:
        return {
            "responseModalities": list(self.response_modalities),
            "speechConfig": {
                "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": self.voice}},
            },
        }
