"""Local sound-card adapters built on ``sounddevice``.

Requires the ``sounddevice`` optional dependency::

    pip install 'ptekit[local-audio]'

Usage::

    from ptekit.audio.local import LocalAudioSink, LocalAudioSource

    connection = SessionConnection(
        bootstrap=bootstrap,
        transport=WebSocketSessionTransport(),
        source=LocalAudioSource(),
        sink=LocalAudioSink(),
        dispatcher=dispatcher,
    )
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from typing import Any

from ptekit.audio.base import AudioDeviceError, AudioSink, AudioSource, DeviceBusyError
from ptekit.audio.frame import AudioFrame

logger = logging.getLogger("ptekit.audio.local")

# Frames buffered between the PortAudio thread and the event loop
_MAX_PENDING_FRAMES = 64


class LocalAudioSource(AudioSource):
    """System microphone as an :class:`AudioSource`.

    The PortAudio callback runs on its own thread; each block is handed
    to the event loop with ``call_soon_threadsafe``.  If the loop falls
    more than ``_MAX_PENDING_FRAMES`` behind, the oldest block is dropped.

    Args:
        sample_rate: Capture rate in Hz.
        device: Sounddevice input device index or name (None = default).
    """

    def __init__(self, *, sample_rate: int = 16000, device: int | str | None = None) -> None:
        self._sd = _import_sounddevice()
        self._sample_rate = sample_rate
        self._device = device
        self._stream: Any | None = None
        self._frames: asyncio.Queue[AudioFrame | None] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self.overruns = 0

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    async def open(self, frame_samples: int) -> None:
        if self._stream is not None:
            raise DeviceBusyError("Microphone stream is already open")
        self._loop = asyncio.get_running_loop()
        self._frames = asyncio.Queue()
        try:
            stream = self._sd.RawInputStream(
                samplerate=self._sample_rate,
                blocksize=frame_samples,
                channels=1,
                dtype="int16",
                device=self._device,
                callback=self._mic_callback,
            )
            stream.start()
        except Exception as exc:
            raise AudioDeviceError(f"Could not open microphone: {exc}") from exc
        self._stream = stream
        logger.info("Microphone opened: rate=%dHz block=%d", self._sample_rate, frame_samples)

    def _mic_callback(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            logger.warning("Mic status: %s", status)
        loop = self._loop
        if loop is None or not loop.is_running():
            return
        frame = AudioFrame(data=bytes(indata), sample_rate=self._sample_rate)
        loop.call_soon_threadsafe(self._deliver, frame)

    def _deliver(self, frame: AudioFrame) -> None:
        if self._frames.qsize() >= _MAX_PENDING_FRAMES:
            self._frames.get_nowait()
            self.overruns += 1
        self._frames.put_nowait(frame)

    async def read_frame(self) -> AudioFrame:
        if self._stream is None:
            raise AudioDeviceError("Microphone is closed")
        frame = await self._frames.get()
        if frame is None:
            raise AudioDeviceError("Microphone was closed while reading")
        return frame

    async def close(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is None:
            return
        try:
            stream.abort()
            stream.close()
        except Exception:
            logger.exception("Error closing microphone stream")
        self._frames.put_nowait(None)
        if self.overruns:
            logger.debug("Microphone closed, %d blocks dropped", self.overruns)
        logger.info("Microphone released")


class LocalAudioSink(AudioSink):
    """System speakers as an :class:`AudioSink`.

    Playback uses a callback-driven ``RawOutputStream``: PortAudio pulls
    samples at the hardware rate and silence fills any gap.  ``play()``
    resolves once the speaker callback has consumed the whole segment.

    Args:
        device: Sounddevice output device index or name (None = default).
    """

    def __init__(self, *, device: int | str | None = None) -> None:
        self._sd = _import_sounddevice()
        self._device = device
        self._stream: Any | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._buffer: deque[tuple[bytes, asyncio.Future[None]]] = deque()
        self._offset = 0
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    async def open(self, sample_rate: int) -> None:
        if self._stream is not None:
            raise DeviceBusyError("Speaker stream is already open")
        self._loop = asyncio.get_running_loop()
        try:
            stream = self._sd.RawOutputStream(
                samplerate=sample_rate,
                channels=1,
                dtype="int16",
                device=self._device,
                latency="high",
                callback=self._speaker_callback,
            )
            stream.start()
        except Exception as exc:
            raise AudioDeviceError(f"Could not open speakers: {exc}") from exc
        self._stream = stream
        logger.info("Speakers opened: rate=%dHz", sample_rate)

    async def play(self, frame: AudioFrame) -> None:
        if self._stream is None or self._loop is None:
            raise AudioDeviceError("Speakers are closed")
        if not frame.data:
            return
        done: asyncio.Future[None] = self._loop.create_future()
        with self._lock:
            self._buffer.append((frame.data, done))
        await done

    def _speaker_callback(self, outdata: Any, frames: int, time_info: Any, status: Any) -> None:
        """Copy queued audio into the PortAudio buffer; pad with silence."""
        needed = frames * 2
        written = 0
        finished: list[asyncio.Future[None]] = []
        with self._lock:
            while written < needed and self._buffer:
                chunk, done = self._buffer[0]
                n = min(len(chunk) - self._offset, needed - written)
                outdata[written : written + n] = chunk[self._offset : self._offset + n]
                written += n
                self._offset += n
                if self._offset >= len(chunk):
                    self._buffer.popleft()
                    self._offset = 0
                    finished.append(done)
        if written < needed:
            outdata[written:] = b"\x00" * (needed - written)
        loop = self._loop
        if finished and loop is not None and loop.is_running():
            for done in finished:
                loop.call_soon_threadsafe(_resolve, done)

    async def abort(self) -> None:
        with self._lock:
            pending = [done for _, done in self._buffer]
            self._buffer.clear()
            self._offset = 0
        for done in pending:
            if not done.done():
                done.cancel()

    async def close(self) -> None:
        await self.abort()
        stream = self._stream
        self._stream = None
        if stream is None:
            return
        try:
            stream.abort()
            stream.close()
        except Exception:
            logger.exception("Error closing speaker stream")
        logger.info("Speakers released")


def _resolve(done: asyncio.Future[None]) -> None:
    if not done.done():
        done.set_result(None)


def _import_sounddevice() -> Any:
    """Import sounddevice, raising a clear error if missing."""
    try:
        import sounddevice as _sd

        return _sd
    except ImportError as exc:
        raise ImportError(
            "sounddevice is required for local audio devices. "
            "Install it with: pip install 'ptekit[local-audio]'"
        ) from exc
