"""HTTP tool backend: POSTs ``{toolName, args}`` to a tool-execution endpoint."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlparse

import httpx
from pydantic import BaseModel, Field, SecretStr, field_validator

from ptekit.tools.base import ToolBackend, ToolExecutionError

logger = logging.getLogger("ptekit.tools.http")


class HTTPToolBackendConfig(BaseModel):
    """Configuration for :class:`HTTPToolBackend`."""

    url: str
    token: SecretStr | None = None
    timeout: float = 30.0
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ValueError("url must be an http(s) URL with a host")
        return v


class HTTPToolBackend(ToolBackend):
    """Executes tools through a JSON endpoint.

    The endpoint receives ``{"toolName": ..., "args": {...}}`` and answers
    with the tool's JSON result.  A non-2xx status, or a 2xx body of the
    form ``{"error": ...}``, is reported as :class:`ToolExecutionError`.

    Tool calls can have side effects (e.g. updating study goals) so
    requests are never retried.
    """

    def __init__(
        self,
        config: HTTPToolBackendConfig,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout)

    @property
    def name(self) -> str:
        return f"http:{self._config.url}"

    def _build_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", **self._config.headers}
        if self._config.token is not None:
            headers["Authorization"] = f"Bearer {self._config.token.get_secret_value()}"
        return headers

    async def invoke(self, tool_name: str, args: dict[str, Any]) -> Any:
        try:
            resp = await self._client.post(
                self._config.url,
                json={"toolName": tool_name, "args": args},
                headers=self._build_headers(),
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as exc:
            raise ToolExecutionError(f"Tool {tool_name} timed out", tool_name=tool_name) from exc
        except httpx.HTTPStatusError as exc:
            detail = _error_detail(exc.response)
            raise ToolExecutionError(
                f"Tool {tool_name} failed: http_{exc.response.status_code} {detail}".rstrip(),
                tool_name=tool_name,
            ) from exc
        except httpx.HTTPError as exc:
            raise ToolExecutionError(f"Tool {tool_name} failed: {exc}", tool_name=tool_name) from exc
        except ValueError as exc:
            raise ToolExecutionError(
                f"Tool {tool_name} returned invalid JSON", tool_name=tool_name
            ) from exc

        if isinstance(data, dict) and set(data) == {"error"}:
            raise ToolExecutionError(f"Tool {tool_name} failed: {data['error']}", tool_name=tool_name)
        logger.debug("Tool %s returned %s", tool_name, type(data).__name__)
        return data

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return ""
    if isinstance(body, dict) and "error" in body:
        return str(body["error"])
    return ""
