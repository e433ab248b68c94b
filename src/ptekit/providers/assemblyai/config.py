"""AssemblyAI transcription configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field, SecretStr

from ptekit.core.retry import RetryPolicy


class AssemblyAIConfig(BaseModel):
    """AssemblyAI speech-to-text configuration.

    ``api_key`` may be left unset; submitting a job then fails with
    :class:`~ptekit.scoring.transcription.MissingCredentialsError`.
    """

    api_key: SecretStr | None = None
    base_url: str = "https://api.assemblyai.com/v2"
    timeout: float = 30.0
    speaker_labels: bool = False
    language_code: str | None = None
    poll_retry: RetryPolicy = Field(default_factory=RetryPolicy)
