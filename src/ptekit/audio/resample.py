"""Linear-interpolation resampling for PCM audio frames."""

from __future__ import annotations

import struct

from ptekit.audio.frame import AudioFrame

_FMT_MAP = {1: "b", 2: "h", 4: "i"}


def _unpack(data: bytes, width: int) -> list[int]:
    count = len(data) // width
    return list(struct.unpack(f"<{count}{_FMT_MAP[width]}", data[: count * width]))


def _pack(samples: list[int], width: int) -> bytes:
    low = -(1 << (width * 8 - 1))
    high = (1 << (width * 8 - 1)) - 1
    clamped = [max(low, min(high, s)) for s in samples]
    return struct.pack(f"<{len(clamped)}{_FMT_MAP[width]}", *clamped)


def _remix(samples: list[int], src_channels: int, dst_channels: int) -> list[int]:
    if src_channels == dst_channels:
        return samples
    if src_channels == 2:
        # Stereo -> mono: average L+R
        return [(samples[i] + samples[i + 1]) // 2 for i in range(0, len(samples) - 1, 2)]
    out: list[int] = []
    for s in samples:
        out.extend((s, s))
    return out


def _interpolate(samples: list[int], channels: int, src_rate: int, dst_rate: int) -> list[int]:
    per_channel = len(samples) // channels
    if per_channel == 0:
        return []
    out_frames = max(int(per_channel * dst_rate / src_rate), 1)
    step = (per_channel - 1) / max(out_frames - 1, 1)
    out = [0] * (out_frames * channels)
    for i in range(out_frames):
        pos = i * step
        idx = int(pos)
        frac = pos - idx
        for ch in range(channels):
            left = samples[idx * channels + ch]
            if idx + 1 < per_channel:
                right = samples[(idx + 1) * channels + ch]
                out[i * channels + ch] = round(left + (right - left) * frac)
            else:
                out[i * channels + ch] = left
    return out


class LinearResampler:
    """Resampler using linear interpolation in pure Python.

    Converts channel count, sample rate and sample width in one pass.
    Sample order is always preserved; only the number of samples changes
    when the rate does.
    """

    @property
    def name(self) -> str:
        return "linear"

    def resample(
        self,
        frame: AudioFrame,
        target_rate: int,
        target_channels: int = 1,
        target_width: int = 2,
    ) -> AudioFrame:
        if (
            frame.sample_rate == target_rate
            and frame.channels == target_channels
            and frame.sample_width == target_width
        ):
            return frame
        if target_width not in _FMT_MAP:
            raise ValueError(f"Unsupported target sample width: {target_width}")

        samples = _unpack(frame.data, frame.sample_width)
        samples = _remix(samples, frame.channels, target_channels)
        if frame.sample_rate != target_rate:
            samples = _interpolate(samples, target_channels, frame.sample_rate, target_rate)
        if frame.sample_width != target_width:
            src_max = (1 << (frame.sample_width * 8 - 1)) - 1
            dst_max = (1 << (target_width * 8 - 1)) - 1
            samples = [int(s * dst_max / src_max) for s in samples]

        return AudioFrame(
            data=_pack(samples, target_width),
            sample_rate=target_rate,
            channels=target_channels,
            sample_width=target_width,
            timestamp_ms=frame.timestamp_ms,
            metadata=dict(frame.metadata),
        )
