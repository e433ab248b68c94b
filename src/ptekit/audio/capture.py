"""CaptureStream: pulls fixed-size frames from an input device."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any

from ptekit.audio.base import AudioDeviceError, AudioSource
from ptekit.audio.codec import AudioCodec
from ptekit.audio.frame import AudioFrame

logger = logging.getLogger("ptekit.audio.capture")

CaptureFrameCallback = Callable[[AudioFrame], Any]
CaptureErrorCallback = Callable[[Exception], Any]


class CaptureStream:
    """Reads frames from an :class:`AudioSource` at the device cadence.

    Every frame is converted to the wire format and handed to
    ``on_frame``.  The stream itself never decides whether a frame is
    transmitted; the session gates that, so the device keeps being read
    (and timing stays stable) while muted.

    Args:
        source: Input device adapter.
        codec: Codec used to convert captured frames to the wire format.
        on_frame: Called with each converted frame.  May be sync or async.
        frame_ms: Duration of each captured frame in milliseconds.
        on_error: Called once if the device fails; the loop then exits.
    """

    def __init__(
        self,
        source: AudioSource,
        codec: AudioCodec,
        on_frame: CaptureFrameCallback,
        *,
        frame_ms: int = 128,
        on_error: CaptureErrorCallback | None = None,
    ) -> None:
        if frame_ms <= 0:
            raise ValueError(f"frame_ms must be positive, got {frame_ms}")
        self._source = source
        self._codec = codec
        self._on_frame = on_frame
        self._on_error = on_error
        self._frame_ms = frame_ms
        self._task: asyncio.Task[None] | None = None
        self.captured = 0

    @property
    def frame_samples(self) -> int:
        return max(int(self._source.sample_rate * self._frame_ms / 1000), 1)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, *, name: str = "capture_stream") -> None:
        """Open the device and start the capture loop."""
        if self.is_running:
            return
        await self._source.open(self.frame_samples)
        self._task = asyncio.get_running_loop().create_task(self._run(), name=name)
        logger.debug(
            "Capture started: source=%s rate=%d frame=%dms",
            self._source.name,
            self._source.sample_rate,
            self._frame_ms,
        )

    async def stop(self) -> None:
        """Cancel the capture loop and release the device."""
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._source.close()
        logger.debug("Capture stopped after %d frames", self.captured)

    async def _run(self) -> None:
        while True:
            try:
                frame = await self._source.read_frame()
            except AudioDeviceError as exc:
                logger.error("Capture device failed: %s", exc)
                if self._on_error is not None:
                    self._on_error(exc)
                return
            self.captured += 1
            try:
                result = self._on_frame(self._codec.to_wire(frame))
                if hasattr(result, "__await__"):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Error handling captured frame")
