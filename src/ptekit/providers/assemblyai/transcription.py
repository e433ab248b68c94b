"""AssemblyAI transcription backend."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ptekit.core.retry import retry_with_backoff
from ptekit.providers.assemblyai.config import AssemblyAIConfig
from ptekit.scoring.transcription import (
    MissingCredentialsError,
    TranscriptionBackend,
    TranscriptionJob,
    TranscriptionStatus,
    TranscriptionUpdate,
    TranscriptionUpstreamError,
)

logger = logging.getLogger("ptekit.providers.assemblyai")


class AssemblyAITranscriptionBackend(TranscriptionBackend):
    """Transcription jobs via the AssemblyAI ``/transcript`` REST API.

    Job creation is not retried since a retry could create a duplicate
    job; status polls are idempotent and retried on network errors.
    """

    def __init__(
        self,
        config: AssemblyAIConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or AssemblyAIConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self._config.timeout)

    @property
    def name(self) -> str:
        return "assemblyai"

    def _headers(self) -> dict[str, str]:
        key = self._config.api_key
        if key is None or not key.get_secret_value():
            raise MissingCredentialsError("AssemblyAI API Key missing")
        return {"authorization": key.get_secret_value()}

    async def submit(self, audio_url: str) -> TranscriptionJob:
        headers = self._headers()
        body: dict[str, Any] = {
            "audio_url": audio_url,
            "speaker_labels": self._config.speaker_labels,
        }
        if self._config.language_code:
            body["language_code"] = self._config.language_code

        try:
            data = await self._request("POST", "/transcript", headers=headers, json=body)
        except httpx.HTTPError as exc:
            raise TranscriptionUpstreamError(f"AssemblyAI request failed: {exc}") from exc
        job_id = data.get("id")
        if not job_id:
            raise TranscriptionUpstreamError("AssemblyAI response has no job id")
        update = _parse_update(data, str(job_id))
        job = TranscriptionJob(id=str(job_id))
        job.apply(update)
        logger.info("Created AssemblyAI transcript %s", job_id)
        return job

    async def poll(self, job_id: str) -> TranscriptionUpdate:
        headers = self._headers()
        try:
            data = await retry_with_backoff(
                self._request,
                self._config.poll_retry,
                "GET",
                f"/transcript/{job_id}",
                headers=headers,
                retry_on=(httpx.TransportError,),
            )
        except httpx.HTTPError as exc:
            raise TranscriptionUpstreamError(
                f"AssemblyAI poll failed: {exc}", job_id=job_id
            ) from exc
        return _parse_update(data, job_id)

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self._config.base_url.rstrip('/')}{path}"
        try:
            resp = await self._client.request(method, url, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TranscriptionUpstreamError(
                f"AssemblyAI returned http_{exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc

        try:
            data = resp.json()
        except ValueError as exc:
            raise TranscriptionUpstreamError("AssemblyAI returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise TranscriptionUpstreamError("AssemblyAI returned a non-object body")
        if data.get("error") and data.get("status") != "error":
            raise TranscriptionUpstreamError(str(data["error"]), job_id=data.get("id"))
        return data

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _parse_update(data: dict[str, Any], job_id: str) -> TranscriptionUpdate:
    try:
        status = TranscriptionStatus(data.get("status"))
    except ValueError as exc:
        raise TranscriptionUpstreamError(
            f"Unknown transcript status {data.get('status')!r}", job_id=job_id
        ) from exc
    return TranscriptionUpdate(
        status=status,
        transcript=data.get("text"),
        error=data.get("error"),
    )
