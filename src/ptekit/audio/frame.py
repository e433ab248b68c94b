"""AudioFrame data model shared by capture, codec and playback."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class AudioFrame:
    """A buffer of interleaved PCM samples tagged with its format.

    Outbound frames are produced by a capture source and handed to the
    session for transmission; inbound frames are decoded from the model's
    audio envelopes and consumed by the playback sink.
    """

    data: bytes  # little-endian PCM
    sample_rate: int = 16000
    channels: int = 1
    sample_width: int = 2
    timestamp_ms: float | None = None  # ms since session start

    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.data, bytes):
            raise ValueError(f"frame data must be bytes, got {type(self.data).__name__}")
        if self.sample_rate <= 0 or self.sample_rate > 192_000:
            raise ValueError(f"sample_rate out of range: {self.sample_rate}")
        if self.channels not in (1, 2):
            raise ValueError(f"channels must be 1 or 2, got {self.channels}")
        if self.sample_width not in (1, 2, 4):
            raise ValueError(f"sample_width must be 1, 2, or 4, got {self.sample_width}")
        frame_align = self.sample_width * self.channels
        if len(self.data) % frame_align != 0:
            raise ValueError(
                f"data length ({len(self.data)}) must be divisible by "
                f"sample_width * channels ({frame_align})"
            )

    @property
    def num_samples(self) -> int:
        """Per-channel sample count."""
        return len(self.data) // (self.sample_width * self.channels)

    @property
    def duration_ms(self) -> float:
        return self.num_samples * 1000 / self.sample_rate
