"""Tests for retry_with_backoff and TaskTracker."""

from __future__ import annotations

import asyncio
import logging

import pytest

from ptekit.core.retry import RetryPolicy, retry_with_backoff
from ptekit.core.tasks import TaskTracker

FAST = RetryPolicy(max_retries=2, base_delay_seconds=0.001, max_delay_seconds=0.001)


class TestRetryWithBackoff:
    async def test_succeeds_after_failures(self) -> None:
        attempts = 0

        async def flaky() -> str:
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise ConnectionError("reset")
            return "ok"

        assert await retry_with_backoff(flaky, FAST) == "ok"
        assert attempts == 3

    async def test_raises_last_error(self) -> None:
        async def always() -> None:
            raise ConnectionError("down")

        with pytest.raises(ConnectionError, match="down"):
            await retry_with_backoff(always, FAST)

    async def test_non_matching_error_not_retried(self) -> None:
        attempts = 0

        async def bad() -> None:
            nonlocal attempts
            attempts += 1
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            await retry_with_backoff(bad, FAST, retry_on=(ConnectionError,))
        assert attempts == 1

    async def test_passes_arguments(self) -> None:
        async def add(a: int, *, b: int) -> int:
            return a + b

        assert await retry_with_backoff(add, FAST, 1, b=2) == 3


class TestTaskTracker:
    async def test_tracks_until_done(self, advance) -> None:
        tracker = TaskTracker()
        tracker.spawn(asyncio.sleep(0), name="t")
        assert len(tracker) == 1
        await advance()
        assert len(tracker) == 0

    async def test_logs_task_errors(self, advance, caplog: pytest.LogCaptureFixture) -> None:
        async def boom() -> None:
            raise RuntimeError("exploded")

        tracker = TaskTracker()
        with caplog.at_level(logging.ERROR, logger="ptekit.tasks"):
            tracker.spawn(boom(), name="boom-task")
            await advance()
        assert "boom-task" in caplog.text

    async def test_cancel_all(self) -> None:
        tracker = TaskTracker()
        task = tracker.spawn(asyncio.sleep(10), name="sleeper")
        await tracker.cancel_all()
        assert task.cancelled()
        assert len(tracker) == 0

    async def test_wait(self) -> None:
        tracker = TaskTracker()
        done: list[int] = []

        async def work(n: int) -> None:
            await asyncio.sleep(0)
            done.append(n)

        for n in range(3):
            tracker.spawn(work(n), name=f"w{n}")
        await tracker.wait()
        assert sorted(done) == [0, 1, 2]
