"""Session bootstrap: obtains a short-lived credential and negotiated config."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx
from pydantic import BaseModel, Field, SecretStr, ValidationError

logger = logging.getLogger("ptekit.session.bootstrap")


class BootstrapError(Exception):
    """The bootstrap endpoint could not provide a usable credential."""


class SessionCredential(BaseModel):
    """Credential and negotiated configuration for one session.

    ``config`` may carry ``model``, ``generationConfig`` and
    ``systemInstruction`` (either a string or ``{"parts": [{"text"}]}``);
    any value present overrides the local :class:`SessionConfig` default.
    """

    api_key: SecretStr = Field(alias="apiKey")
    config: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}

    @property
    def model(self) -> str | None:
        return self.config.get("model")

    @property
    def generation_config(self) -> dict[str, Any] | None:
        return self.config.get("generationConfig")

    @property
    def system_instruction(self) -> str | None:
        value = self.config.get("systemInstruction")
        if value is None or isinstance(value, str):
            return value
        parts = value.get("parts", []) if isinstance(value, dict) else []
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        return text or None


class SessionBootstrap(ABC):
    """Source of session credentials."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    async def fetch_credential(self) -> SessionCredential:
        """Return a fresh credential.

        Raises:
            BootstrapError: If no credential could be obtained.
        """
        ...

    async def close(self) -> None:  # noqa: B027
        """Release resources.  Default is a no-op."""


class StaticSessionBootstrap(SessionBootstrap):
    """Returns a fixed API key, e.g. for local scripts."""

    def __init__(self, api_key: str | SecretStr, config: dict[str, Any] | None = None) -> None:
        key = api_key if isinstance(api_key, SecretStr) else SecretStr(api_key)
        self._credential = SessionCredential(api_key=key, config=config or {})

    async def fetch_credential(self) -> SessionCredential:
        return self._credential


class HTTPSessionBootstrap(SessionBootstrap):
    """POSTs to a bootstrap endpoint answering ``{apiKey, config}``."""

    def __init__(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._headers = headers or {}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def name(self) -> str:
        return f"http:{self._url}"

    async def fetch_credential(self) -> SessionCredential:
        try:
            resp = await self._client.post(self._url, headers=self._headers)
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as exc:
            raise BootstrapError("Session bootstrap timed out") from exc
        except httpx.HTTPStatusError as exc:
            raise BootstrapError(
                f"Session bootstrap failed: http_{exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise BootstrapError(f"Session bootstrap failed: {exc}") from exc
        except ValueError as exc:
            raise BootstrapError("Session bootstrap returned invalid JSON") from exc

        try:
            credential = SessionCredential.model_validate(data)
        except ValidationError as exc:
            raise BootstrapError(f"Session bootstrap response malformed: {exc}") from exc
        if not credential.api_key.get_secret_value():
            raise BootstrapError("Session bootstrap returned an empty API key")
        logger.debug("Fetched session credential (model=%s)", credential.model)
        return credential

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
