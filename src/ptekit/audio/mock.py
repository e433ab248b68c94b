"""Mock audio source and sink for testing."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from ptekit.audio.base import AudioDeviceError, AudioSink, AudioSource, DeviceBusyError
from ptekit.audio.frame import AudioFrame


@dataclass
class MockCall:
    """Record of a method call for test assertions."""

    method: str
    args: dict[str, Any] = field(default_factory=dict)


class MockAudioSource(AudioSource):
    """Scripted capture device.

    Frames pushed with :meth:`push` are returned by ``read_frame()`` in
    order.  When ``interval`` is set and nothing is queued, a silent frame
    is produced every ``interval`` seconds instead, emulating a live
    microphone.  Opening the source while it is already open raises
    :class:`DeviceBusyError`, the same way a real device held by a stale
    stream would.

    Example:
        source = MockAudioSource()
        source.push(AudioFrame(b"\\x01\\x00" * 160))
    """

    def __init__(self, *, sample_rate: int = 16000, interval: float | None = None) -> None:
        self.calls: list[MockCall] = []
        self._sample_rate = sample_rate
        self._interval = interval
        self._frames: asyncio.Queue[AudioFrame] = asyncio.Queue()
        self._open = False
        self._frame_samples = 0
        self.open_count = 0
        self.close_count = 0

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def is_open(self) -> bool:
        return self._open

    def push(self, frame: AudioFrame) -> None:
        """Queue a frame to be returned by the next ``read_frame()``."""
        self._frames.put_nowait(frame)

    async def open(self, frame_samples: int) -> None:
        self.calls.append(MockCall("open", {"frame_samples": frame_samples}))
        if self._open:
            raise DeviceBusyError("MockAudioSource is already open")
        self._open = True
        self._frame_samples = frame_samples
        self.open_count += 1

    async def read_frame(self) -> AudioFrame:
        if not self._open:
            raise AudioDeviceError("MockAudioSource is closed")
        if self._interval is None or not self._frames.empty():
            return await self._frames.get()
        await asyncio.sleep(self._interval)
        return AudioFrame(data=b"\x00\x00" * self._frame_samples, sample_rate=self._sample_rate)

    async def close(self) -> None:
        self.calls.append(MockCall("close"))
        if self._open:
            self.close_count += 1
        self._open = False


class MockAudioSink(AudioSink):
    """Recording playback device.

    Each ``play()`` records the frame and, when ``play_delay`` is set,
    sleeps that long to emulate playback time.  ``max_concurrent`` tracks
    the highest number of overlapping ``play()`` calls seen.
    """

    def __init__(self, *, play_delay: float = 0.0) -> None:
        self.calls: list[MockCall] = []
        self.played: list[AudioFrame] = []
        self.play_delay = play_delay
        self.gate: asyncio.Event | None = None
        self._open = False
        self._active = 0
        self.max_concurrent = 0
        self.aborted = 0
        self.sample_rate: int | None = None

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self, sample_rate: int) -> None:
        self.calls.append(MockCall("open", {"sample_rate": sample_rate}))
        if self._open:
            raise DeviceBusyError("MockAudioSink is already open")
        self._open = True
        self.sample_rate = sample_rate

    async def play(self, frame: AudioFrame) -> None:
        if not self._open:
            raise AudioDeviceError("MockAudioSink is closed")
        self._active += 1
        self.max_concurrent = max(self.max_concurrent, self._active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.play_delay:
                await asyncio.sleep(self.play_delay)
            self.played.append(frame)
        finally:
            self._active -= 1

    async def abort(self) -> None:
        self.calls.append(MockCall("abort"))
        self.aborted += 1

    async def close(self) -> None:
        self.calls.append(MockCall("close"))
        self._open = False
