"""Downloading submission audio for inline model input."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from ptekit.core.retry import RetryPolicy, retry_with_backoff

logger = logging.getLogger("ptekit.scoring.fetch")

DEFAULT_AUDIO_MIME = "audio/mpeg"


class AudioFetchError(Exception):
    """The submission audio could not be downloaded."""

    def __init__(self, message: str, *, url: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class _RetryableStatus(Exception):
    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"http_{response.status_code}")
        self.response = response


@dataclass(frozen=True, slots=True)
class FetchedAudio:
    data: bytes
    mime_type: str = DEFAULT_AUDIO_MIME

    @property
    def size(self) -> int:
        return len(self.data)


class AudioFetcher(ABC):
    """Retrieves the bytes behind an audio reference."""

    @abstractmethod
    async def fetch(self, url: str) -> FetchedAudio:
        """Download *url*.

        Raises:
            AudioFetchError: If the audio cannot be retrieved.
        """
        ...

    async def close(self) -> None:  # noqa: B027
        """Release resources.  Default is a no-op."""


class HTTPAudioFetcher(AudioFetcher):
    """Downloads audio with httpx, retrying network errors and 5xx replies."""

    def __init__(
        self,
        *,
        retry: RetryPolicy | None = None,
        max_bytes: int = 20 * 1024 * 1024,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._retry = retry or RetryPolicy()
        self._max_bytes = max_bytes
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def fetch(self, url: str) -> FetchedAudio:
        try:
            resp = await retry_with_backoff(
                self._get,
                self._retry,
                url,
                retry_on=(httpx.TransportError, _RetryableStatus),
            )
        except _RetryableStatus as exc:
            raise AudioFetchError(
                f"Audio fetch failed: {exc}", url=url, status_code=exc.response.status_code
            ) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise AudioFetchError(f"Audio fetch failed: {exc}", url=url) from exc

        if resp.status_code >= 400:
            raise AudioFetchError(
                f"Audio fetch failed: http_{resp.status_code}",
                url=url,
                status_code=resp.status_code,
            )
        data = resp.content
        if not data:
            raise AudioFetchError("Audio fetch returned an empty body", url=url)
        if len(data) > self._max_bytes:
            raise AudioFetchError(
                f"Audio is {len(data)} bytes, limit is {self._max_bytes}", url=url
            )
        mime = resp.headers.get("content-type", "").split(";")[0].strip()
        if not mime.startswith("audio/"):
            mime = DEFAULT_AUDIO_MIME
        logger.debug("Fetched %d bytes of %s from %s", len(data), mime, url)
        return FetchedAudio(data=data, mime_type=mime)

    async def _get(self, url: str) -> httpx.Response:
        resp = await self._client.get(url)
        if resp.status_code >= 500:
            raise _RetryableStatus(resp)
        return resp

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
