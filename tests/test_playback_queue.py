"""Tests for PlaybackQueue ordering, overlap and back-pressure."""

from __future__ import annotations

import asyncio

from ptekit.audio.mock import MockAudioSink
from ptekit.audio.playback import PlaybackQueue
from tests.conftest import make_frame


async def _open(sink: MockAudioSink) -> MockAudioSink:
    await sink.open(24000)
    return sink


class TestPlaybackOrder:
    async def test_segments_play_in_arrival_order(self, sink: MockAudioSink) -> None:
        await _open(sink)
        queue = PlaybackQueue(sink)
        await queue.start()
        frames = [make_frame(value=i) for i in range(10)]
        for frame in frames:
            queue.enqueue(frame)
        await queue.drain()
        assert sink.played == frames
        assert queue.played == 10
        await queue.stop()

    async def test_segments_never_overlap(self) -> None:
        sink = await _open(MockAudioSink(play_delay=0.001))
        queue = PlaybackQueue(sink)
        await queue.start()
        for i in range(5):
            queue.enqueue(make_frame(value=i))
        await queue.drain()
        assert sink.max_concurrent == 1
        await queue.stop()

    async def test_enqueue_before_start_is_ignored(self, sink: MockAudioSink) -> None:
        queue = PlaybackQueue(sink)
        queue.enqueue(make_frame())
        assert queue.depth == 0


class TestBackpressure:
    async def test_warns_once_without_dropping(self, sink: MockAudioSink, advance) -> None:
        await _open(sink)
        sink.gate = asyncio.Event()
        depths: list[int] = []
        queue = PlaybackQueue(sink, max_depth=3, on_backpressure=depths.append)
        await queue.start()
        for i in range(8):
            queue.enqueue(make_frame(value=i))
        await advance()
        assert depths == [4]
        sink.gate.set()
        await queue.drain()
        assert len(sink.played) == 8
        assert queue.discarded == 0
        await queue.stop()

    async def test_callback_error_does_not_break_enqueue(self, sink: MockAudioSink) -> None:
        await _open(sink)
        sink.gate = asyncio.Event()

        def boom(depth: int) -> None:
            raise RuntimeError("callback failed")

        queue = PlaybackQueue(sink, max_depth=1, on_backpressure=boom)
        await queue.start()
        for i in range(4):
            queue.enqueue(make_frame(value=i))
        assert queue.depth >= 3
        await queue.stop()


class TestStop:
    async def test_discard_drops_backlog_and_aborts(self, sink: MockAudioSink, advance) -> None:
        await _open(sink)
        sink.gate = asyncio.Event()
        queue = PlaybackQueue(sink)
        await queue.start()
        for i in range(4):
            queue.enqueue(make_frame(value=i))
        await advance()
        assert queue.is_playing
        await queue.stop(discard=True)
        assert queue.discarded == 3
        assert sink.aborted == 1
        assert sink.played == []
        assert not queue.is_running

    async def test_graceful_stop_plays_backlog(self, sink: MockAudioSink) -> None:
        await _open(sink)
        queue = PlaybackQueue(sink)
        await queue.start()
        for i in range(3):
            queue.enqueue(make_frame(value=i))
        await queue.stop(discard=False)
        assert len(sink.played) == 3
        assert sink.aborted == 0

    async def test_restart_after_stop(self, sink: MockAudioSink) -> None:
        await _open(sink)
        queue = PlaybackQueue(sink)
        await queue.start()
        await queue.stop()
        await queue.start()
        queue.enqueue(make_frame())
        await queue.drain()
        assert len(sink.played) == 1
        await queue.stop()

    async def test_failed_segment_does_not_stop_consumer(self, advance) -> None:
        sink = MockAudioSink()
        queue = PlaybackQueue(sink)
        await queue.start()
        queue.enqueue(make_frame())  # sink not open, play() raises
        await advance()
        await sink.open(24000)
        queue.enqueue(make_frame(value=7))
        await queue.drain()
        assert queue.failed == 1
        assert queue.played == 1
        await queue.stop()
