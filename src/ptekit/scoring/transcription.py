"""Transcription job lifecycle and a timeout-bounded poller."""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum, unique

from ptekit.scoring.config import TranscriptionConfig

logger = logging.getLogger("ptekit.scoring.transcription")


class TranscriptionError(Exception):
    """Base class for transcription failures."""


class MissingCredentialsError(TranscriptionError):
    """The transcription service has no API key configured."""


class TranscriptionUpstreamError(TranscriptionError):
    """The service reported an error or could not be reached.

    Attributes:
        job_id: Identifier of the failing job, when one was created.
        status_code: HTTP status from the service, if available.
    """

    def __init__(
        self, message: str, *, job_id: str | None = None, status_code: int | None = None
    ) -> None:
        super().__init__(message)
        self.job_id = job_id
        self.status_code = status_code


class TranscriptionTimeoutError(TranscriptionError):
    """The job did not reach a terminal state within the configured bound."""

    def __init__(self, message: str, *, job_id: str | None = None, polls: int = 0) -> None:
        super().__init__(message)
        self.job_id = job_id
        self.polls = polls


class InvalidTransitionError(TranscriptionUpstreamError):
    """The service reported a status that moves the job backwards."""


@unique
class TranscriptionStatus(StrEnum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (TranscriptionStatus.COMPLETED, TranscriptionStatus.ERROR)


_RANK = {
    TranscriptionStatus.QUEUED: 0,
    TranscriptionStatus.PROCESSING: 1,
    TranscriptionStatus.COMPLETED: 2,
    TranscriptionStatus.ERROR: 2,
}


@dataclass(slots=True)
class TranscriptionUpdate:
    """One status observation returned by a backend."""

    status: TranscriptionStatus
    transcript: str | None = None
    error: str | None = None


@dataclass
class TranscriptionJob:
    """Client-side view of an external transcription job.

    Status only moves forward: queued, processing, then completed or
    error.  Observations may skip ``processing`` because the job is
    sampled by polling; repeating the current status is a no-op.
    """

    id: str
    status: TranscriptionStatus = TranscriptionStatus.QUEUED
    transcript: str | None = None
    error: str | None = None
    history: list[TranscriptionStatus] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.history:
            self.history.append(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def apply(self, update: TranscriptionUpdate) -> None:
        """Advance to the observed status.

        Raises:
            InvalidTransitionError: If the job is terminal or the update
                would move it backwards.
        """
        new = update.status
        if self.is_terminal:
            raise InvalidTransitionError(
                f"Job {self.id} is already {self.status}, got {new}", job_id=self.id
            )
        if _RANK[new] < _RANK[self.status]:
            raise InvalidTransitionError(
                f"Job {self.id} cannot go from {self.status} to {new}", job_id=self.id
            )
        if new != self.status:
            self.history.append(new)
        self.status = new
        if new is TranscriptionStatus.COMPLETED:
            self.transcript = update.transcript or ""
        elif new is TranscriptionStatus.ERROR:
            self.error = update.error or "Transcription failed"


class TranscriptionBackend(ABC):
    """An external speech-to-text job service."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    async def submit(self, audio_url: str) -> TranscriptionJob:
        """Create a job for *audio_url*.

        Raises:
            MissingCredentialsError: If no API key is configured.
            TranscriptionUpstreamError: If the service rejected the request.
        """
        ...

    @abstractmethod
    async def poll(self, job_id: str) -> TranscriptionUpdate:
        """Fetch the current status of a job."""
        ...

    async def close(self) -> None:  # noqa: B027
        """Release resources.  Default is a no-op."""


@dataclass(slots=True)
class _Progress:
    job: TranscriptionJob | None = None
    polls: int = 0


class TranscriptionPoller:
    """Drives a job from submission to a terminal state.

    The whole ``transcribe()`` call is bounded by ``max_duration`` and,
    when set, by ``max_polls``; a job stuck in ``processing`` ends in
    :class:`TranscriptionTimeoutError` rather than hanging.
    """

    def __init__(
        self,
        backend: TranscriptionBackend,
        config: TranscriptionConfig | None = None,
    ) -> None:
        self._backend = backend
        self._config = config or TranscriptionConfig()

    @property
    def backend(self) -> TranscriptionBackend:
        return self._backend

    async def transcribe(self, audio_url: str) -> str:
        """Return the transcript of *audio_url*.

        Raises:
            MissingCredentialsError: No API key configured.
            TranscriptionUpstreamError: The job ended in ``error`` or the
                service failed.
            TranscriptionTimeoutError: The configured bound was exceeded.
        """
        started = time.monotonic()
        progress = _Progress()
        try:
            async with asyncio.timeout(self._config.max_duration):
                job = await self._run(audio_url, progress)
        except TimeoutError:
            job_id = progress.job.id if progress.job else None
            polls = progress.polls
            logger.warning(
                "Transcription job %s timed out after %.1fs (%d polls)",
                job_id,
                time.monotonic() - started,
                polls,
            )
            raise TranscriptionTimeoutError(
                f"Transcription did not finish within {self._config.max_duration}s",
                job_id=job_id,
                polls=polls,
            ) from None

        logger.info(
            "Transcription job %s completed in %.1fs",
            job.id,
            time.monotonic() - started,
        )
        return job.transcript or ""

    async def _run(self, audio_url: str, progress: _Progress) -> TranscriptionJob:
        job = await self._backend.submit(audio_url)
        progress.job = job
        logger.debug("Submitted transcription job %s (%s)", job.id, job.status)

        polls = 0
        while not job.is_terminal:
            if self._config.max_polls is not None and polls >= self._config.max_polls:
                raise TranscriptionTimeoutError(
                    f"Transcription job {job.id} still {job.status} after {polls} polls",
                    job_id=job.id,
                    polls=polls,
                )
            await asyncio.sleep(self._config.poll_interval)
            update = await self._backend.poll(job.id)
            polls += 1
            progress.polls = polls
            job.apply(update)

        if job.status is TranscriptionStatus.ERROR:
            raise TranscriptionUpstreamError(job.error or "Transcription failed", job_id=job.id)
        return job
