"""AudioCodec: sample conversion and transport encoding for session audio.

Outbound audio leaves the client as mono 16-bit PCM at the wire input
rate (16 kHz by default) wrapped in a base64 ``MediaChunk``.  Inbound
audio arrives the same way at the model's output rate (24 kHz by
default) and is decoded, then resampled to the playback rate.
"""

from __future__ import annotations

import base64
import binascii
import re
import struct
from collections.abc import Sequence

from ptekit.audio.frame import AudioFrame
from ptekit.audio.resample import LinearResampler
from ptekit.protocol import MediaChunk

_PCM_MIME = "audio/pcm"
_RATE_RE = re.compile(r"rate=(\d+)")


class AudioCodecError(ValueError):
    """Raised when an inbound payload cannot be decoded as PCM audio."""


def floats_to_pcm16(samples: Sequence[float]) -> bytes:
    """Convert float samples in ``[-1.0, 1.0]`` to little-endian 16-bit PCM.

    Negative values scale by 0x8000 and positive values by 0x7FFF so both
    ends of the range map onto the full int16 span.
    """
    ints = []
    for s in samples:
        s = max(-1.0, min(1.0, s))
        ints.append(int(s * 0x8000) if s < 0 else int(s * 0x7FFF))
    return struct.pack(f"<{len(ints)}h", *ints)


def pcm16_to_floats(data: bytes) -> list[float]:
    """Convert little-endian 16-bit PCM to float samples in ``[-1.0, 1.0]``."""
    count = len(data) // 2
    return [
        s / 0x8000 if s < 0 else s / 0x7FFF
        for s in struct.unpack(f"<{count}h", data[: count * 2])
    ]


def mime_type_for(sample_rate: int) -> str:
    return f"{_PCM_MIME};rate={sample_rate}"


def parse_sample_rate(mime_type: str, default: int) -> int:
    """Extract the ``rate=`` parameter from a PCM mime type."""
    match = _RATE_RE.search(mime_type)
    return int(match.group(1)) if match else default


class AudioCodec:
    """Converts captured and received audio to and from the wire format.

    Args:
        wire_input_rate: Sample rate of outbound (client to model) audio.
        wire_output_rate: Sample rate assumed for inbound audio whose mime
            type carries no ``rate=`` parameter.
        playback_rate: Sample rate handed to the playback sink.
    """

    def __init__(
        self,
        *,
        wire_input_rate: int = 16000,
        wire_output_rate: int = 24000,
        playback_rate: int = 24000,
    ) -> None:
        self.wire_input_rate = wire_input_rate
        self.wire_output_rate = wire_output_rate
        self.playback_rate = playback_rate
        self._resampler = LinearResampler()

    def from_floats(
        self, samples: Sequence[float], sample_rate: int, *, timestamp_ms: float | None = None
    ) -> AudioFrame:
        """Build a mono 16-bit frame from float device samples."""
        return AudioFrame(
            data=floats_to_pcm16(samples),
            sample_rate=sample_rate,
            timestamp_ms=timestamp_ms,
        )

    def to_wire(self, frame: AudioFrame) -> AudioFrame:
        """Convert a captured frame to mono 16-bit PCM at the wire input rate."""
        return self._resampler.resample(frame, self.wire_input_rate, 1, 2)

    def encode(self, frame: AudioFrame) -> MediaChunk:
        """Convert *frame* to the wire format and wrap it as a base64 media chunk."""
        wire = self.to_wire(frame)
        return MediaChunk(
            data=base64.b64encode(wire.data).decode("ascii"),
            mime_type=mime_type_for(wire.sample_rate),
        )

    def decode(self, chunk: MediaChunk) -> AudioFrame:
        """Decode an inbound media chunk into a frame at the playback rate.

        Raises:
            AudioCodecError: If the payload is not valid base64 or is not
                a whole number of 16-bit samples.
        """
        if not chunk.mime_type.startswith(_PCM_MIME):
            raise AudioCodecError(f"Unsupported audio mime type: {chunk.mime_type}")
        try:
            data = base64.b64decode(chunk.data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise AudioCodecError(f"Invalid base64 audio payload: {exc}") from exc
        if len(data) % 2:
            raise AudioCodecError(f"PCM16 payload has odd length ({len(data)} bytes)")
        frame = AudioFrame(
            data=data,
            sample_rate=parse_sample_rate(chunk.mime_type, self.wire_output_rate),
        )
        return self._resampler.resample(frame, self.playback_rate, 1, 2)
