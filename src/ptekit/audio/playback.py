"""PlaybackQueue: strictly ordered playback of inbound audio segments.

A single background consumer takes segments off the queue and awaits
``AudioSink.play()`` for each one before taking the next, so segments
are played in arrival order and never overlap.  Nothing is dropped
under backlog; exceeding ``max_depth`` raises a back-pressure warning
instead.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any

from ptekit.audio.base import AudioSink
from ptekit.audio.frame import AudioFrame

logger = logging.getLogger("ptekit.audio.playback")

# Sentinel used as a control signal on the queue
_STOP = "STOP"

BackpressureCallback = Callable[[int], Any]


class PlaybackQueue:
    """FIFO buffer of decoded audio drained by one playback consumer.

    Args:
        sink: Output device adapter that plays each segment.
        max_depth: Queue depth above which a back-pressure warning is
            raised.  The warning re-arms once the backlog falls to half
            of this value.
        on_backpressure: Optional callback fired with the current depth
            each time the warning is raised.
    """

    def __init__(
        self,
        sink: AudioSink,
        *,
        max_depth: int = 256,
        on_backpressure: BackpressureCallback | None = None,
    ) -> None:
        if max_depth < 1:
            raise ValueError(f"max_depth must be >= 1, got {max_depth}")
        self._sink = sink
        self._max_depth = max_depth
        self._on_backpressure = on_backpressure
        self._queue: asyncio.Queue[AudioFrame | str] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._over_limit = False
        self._playing = False
        self.played = 0
        self.failed = 0
        self.discarded = 0

    @property
    def depth(self) -> int:
        """Segments waiting to be played (excludes the one playing now)."""
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_playing(self) -> bool:
        return self._playing

    def enqueue(self, frame: AudioFrame) -> None:
        """Append a segment (non-blocking).  Ignored once the queue is stopped."""
        if not self.is_running:
            logger.debug("Playback queue not running, ignoring %d bytes", len(frame.data))
            return
        self._queue.put_nowait(frame)
        depth = self._queue.qsize()
        if depth > self._max_depth and not self._over_limit:
            self._over_limit = True
            logger.warning(
                "Playback backlog %d exceeds max depth %d, audio is falling behind",
                depth,
                self._max_depth,
            )
            if self._on_backpressure is not None:
                try:
                    self._on_backpressure(depth)
                except Exception:
                    logger.exception("Error in back-pressure callback")

    async def start(self) -> None:
        """Start the background playback consumer."""
        if self.is_running:
            return
        self._queue = asyncio.Queue()
        self._over_limit = False
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="playback_queue"
        )

    async def drain(self) -> None:
        """Wait until every queued segment has finished playing."""
        if self.is_running:
            await self._queue.join()

    async def stop(self, *, discard: bool = True, timeout: float = 2.0) -> None:
        """Stop the consumer.

        With ``discard=True`` pending segments are dropped and the segment
        currently playing is aborted.  Otherwise the backlog is played out
        first, bounded by *timeout*.
        """
        task = self._task
        if task is None:
            return
        if discard:
            self.discarded += self._clear()
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            await self._sink.abort()
        else:
            self._queue.put_nowait(_STOP)
            try:
                await asyncio.wait_for(task, timeout=timeout)
            except (TimeoutError, asyncio.CancelledError):
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
                self.discarded += self._clear()
        self._task = None
        self._playing = False
        if self.discarded:
            logger.debug("Playback stopped, %d segments discarded", self.discarded)

    def _clear(self) -> int:
        dropped = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._queue.task_done()
            if item != _STOP:
                dropped += 1
        return dropped

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item == _STOP:
                    return
                assert isinstance(item, AudioFrame)
                self._playing = True
                try:
                    await self._sink.play(item)
                    self.played += 1
                except asyncio.CancelledError:
                    raise
                except Exception:
                    self.failed += 1
                    logger.exception("Error playing audio segment")
                finally:
                    self._playing = False
                if self._over_limit and self._queue.qsize() <= self._max_depth // 2:
                    self._over_limit = False
            finally:
                self._queue.task_done()
