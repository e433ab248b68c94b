"""Tests for TranscriptionJob and TranscriptionPoller."""

from __future__ import annotations

import asyncio
import time

import pytest

from ptekit.scoring.config import TranscriptionConfig
from ptekit.scoring.mock import MockTranscriptionBackend
from ptekit.scoring.transcription import (
    InvalidTransitionError,
    MissingCredentialsError,
    TranscriptionJob,
    TranscriptionPoller,
    TranscriptionStatus,
    TranscriptionTimeoutError,
    TranscriptionUpdate,
    TranscriptionUpstreamError,
)

QUEUED = TranscriptionStatus.QUEUED
PROCESSING = TranscriptionStatus.PROCESSING
COMPLETED = TranscriptionStatus.COMPLETED
ERROR = TranscriptionStatus.ERROR

FAST = TranscriptionConfig(poll_interval=0.001, max_duration=5.0)


class TestTranscriptionJob:
    def test_forward_transitions(self) -> None:
        job = TranscriptionJob(id="j")
        job.apply(TranscriptionUpdate(status=PROCESSING))
        job.apply(TranscriptionUpdate(status=PROCESSING))
        job.apply(TranscriptionUpdate(status=COMPLETED, transcript="hello"))
        assert job.history == [QUEUED, PROCESSING, COMPLETED]
        assert job.transcript == "hello"
        assert job.is_terminal

    def test_queued_may_complete_directly(self) -> None:
        job = TranscriptionJob(id="j")
        job.apply(TranscriptionUpdate(status=COMPLETED, transcript="fast"))
        assert job.status is COMPLETED

    def test_backwards_transition_rejected(self) -> None:
        job = TranscriptionJob(id="j", status=PROCESSING)
        with pytest.raises(InvalidTransitionError):
            job.apply(TranscriptionUpdate(status=QUEUED))

    def test_terminal_is_final(self) -> None:
        job = TranscriptionJob(id="j")
        job.apply(TranscriptionUpdate(status=ERROR, error="bad audio"))
        assert job.error == "bad audio"
        with pytest.raises(InvalidTransitionError):
            job.apply(TranscriptionUpdate(status=COMPLETED, transcript="late"))

    def test_completed_without_text(self) -> None:
        job = TranscriptionJob(id="j")
        job.apply(TranscriptionUpdate(status=COMPLETED))
        assert job.transcript == ""


class TestTranscriptionPoller:
    async def test_polls_until_completed(self) -> None:
        backend = MockTranscriptionBackend(
            [
                TranscriptionUpdate(status=PROCESSING),
                TranscriptionUpdate(status=PROCESSING),
                TranscriptionUpdate(status=COMPLETED, transcript="the quick brown fox"),
            ]
        )
        poller = TranscriptionPoller(backend, FAST)
        assert await poller.transcribe("https://cdn.test/a.mp3") == "the quick brown fox"
        assert backend.submitted == ["https://cdn.test/a.mp3"]
        assert len(backend.polled) == 3

    async def test_already_completed_at_submit(self) -> None:
        backend = MockTranscriptionBackend(initial=COMPLETED)
        poller = TranscriptionPoller(backend, FAST)
        assert await poller.transcribe("u") == ""
        assert backend.polled == []

    async def test_error_status(self) -> None:
        backend = MockTranscriptionBackend(
            [TranscriptionUpdate(status=ERROR, error="Audio file is corrupt")]
        )
        with pytest.raises(TranscriptionUpstreamError, match="corrupt") as exc_info:
            await TranscriptionPoller(backend, FAST).transcribe("u")
        assert exc_info.value.job_id == "job-1"

    async def test_missing_credentials(self) -> None:
        backend = MockTranscriptionBackend(missing_credentials=True)
        with pytest.raises(MissingCredentialsError):
            await TranscriptionPoller(backend, FAST).transcribe("u")

    async def test_stuck_job_times_out_within_bound(self) -> None:
        backend = MockTranscriptionBackend([TranscriptionUpdate(status=PROCESSING)])
        poller = TranscriptionPoller(
            backend, TranscriptionConfig(poll_interval=0.01, max_duration=0.1)
        )
        started = time.monotonic()
        with pytest.raises(TranscriptionTimeoutError) as exc_info:
            await poller.transcribe("u")
        assert time.monotonic() - started < 1.0
        assert exc_info.value.job_id == "job-1"
        assert exc_info.value.polls >= 1

    async def test_poll_count_ceiling(self) -> None:
        backend = MockTranscriptionBackend([TranscriptionUpdate(status=PROCESSING)])
        poller = TranscriptionPoller(
            backend, TranscriptionConfig(poll_interval=0.001, max_duration=60, max_polls=3)
        )
        with pytest.raises(TranscriptionTimeoutError, match="3 polls"):
            await poller.transcribe("u")
        assert len(backend.polled) == 3

    async def test_backwards_status_is_upstream_error(self) -> None:
        backend = MockTranscriptionBackend(
            [TranscriptionUpdate(status=PROCESSING), TranscriptionUpdate(status=QUEUED)]
        )
        with pytest.raises(InvalidTransitionError):
            await TranscriptionPoller(backend, FAST).transcribe("u")

    async def test_concurrent_jobs_are_independent(self) -> None:
        backend = MockTranscriptionBackend(
            [TranscriptionUpdate(status=COMPLETED, transcript="same")]
        )
        poller = TranscriptionPoller(backend, FAST)
        results = await asyncio.gather(poller.transcribe("a"), poller.transcribe("b"))
        assert results == ["same", "same"]
        assert sorted(backend.submitted) == ["a", "b"]
