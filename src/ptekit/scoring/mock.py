"""Mock transcription backend and audio fetcher for testing."""

from __future__ import annotations

import asyncio
import itertools

from ptekit.scoring.fetch import AudioFetcher, AudioFetchError, FetchedAudio
from ptekit.scoring.transcription import (
    MissingCredentialsError,
    TranscriptionBackend,
    TranscriptionJob,
    TranscriptionStatus,
    TranscriptionUpdate,
)


class MockTranscriptionBackend(TranscriptionBackend):
    """Scripted transcription service.

    Each ``poll()`` returns the next entry of ``updates``; once the script
    runs out the last entry repeats, so a script ending in ``processing``
    models a job that never finishes.

    Args:
        updates: Status observations returned by successive polls.
        initial: Status reported at submission.
        missing_credentials: Make ``submit()`` fail as if no key were set.
    """

    def __init__(
        self,
        updates: list[TranscriptionUpdate] | None = None,
        *,
        initial: TranscriptionStatus = TranscriptionStatus.QUEUED,
        missing_credentials: bool = False,
    ) -> None:
        self.updates = updates or [
            TranscriptionUpdate(status=TranscriptionStatus.COMPLETED, transcript="hello world")
        ]
        self.initial = initial
        self.missing_credentials = missing_credentials
        self.submitted: list[str] = []
        self.polled: list[str] = []
        self._ids = itertools.count(1)

    async def submit(self, audio_url: str) -> TranscriptionJob:
        if self.missing_credentials:
            raise MissingCredentialsError("AssemblyAI API Key missing")
        self.submitted.append(audio_url)
        await asyncio.sleep(0)
        return TranscriptionJob(id=f"job-{next(self._ids)}", status=self.initial)

    async def poll(self, job_id: str) -> TranscriptionUpdate:
        index = min(len(self.polled), len(self.updates) - 1)
        self.polled.append(job_id)
        await asyncio.sleep(0)
        return self.updates[index]


class MockAudioFetcher(AudioFetcher):
    """Returns fixed bytes, or raises :class:`AudioFetchError` when ``fail`` is set."""

    def __init__(
        self,
        data: bytes = b"ID3fake-mp3",
        *,
        mime_type: str = "audio/mpeg",
        fail: bool = False,
    ) -> None:
        self.data = data
        self.mime_type = mime_type
        self.fail = fail
        self.fetched: list[str] = []
        self.closed = False

    async def fetch(self, url: str) -> FetchedAudio:
        self.fetched.append(url)
        if self.fail:
            raise AudioFetchError("Audio fetch failed: http_404", url=url, status_code=404)
        return FetchedAudio(data=self.data, mime_type=self.mime_type)

    async def close(self) -> None:
        self.closed = True
