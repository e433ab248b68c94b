"""ToolDispatcher: executes model-issued tool calls against the catalogue."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

from ptekit.protocol import FunctionDeclaration
from ptekit.tools.base import (
    ToolBackend,
    ToolCall,
    ToolDefinition,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolResponse,
    ToolTimeoutError,
)

logger = logging.getLogger("ptekit.tools.dispatcher")

# Sync or async callable taking the call arguments
ToolHandler = Callable[[dict[str, Any]], Any]


class ToolDispatcher:
    """Looks up declared tools by name and invokes them.

    A tool runs through its registered handler when there is one,
    otherwise through the shared ``backend``.  Names outside the declared
    catalogue fail closed with :class:`ToolNotFoundError`.

    At most ``max_concurrency`` invocations run at once.  Further calls
    wait for a free slot in arrival order; each one still gets its own
    response.

    Args:
        tools: The declared catalogue (sent to the model at setup).
        backend: Fallback executor for tools without a handler.
        handlers: Per-tool callables, keyed by tool name.
        max_concurrency: Upper bound on simultaneous invocations.
        timeout: Per-invocation time limit in seconds (None = unbounded).
        result_max_length: Serialized results longer than this are
            truncated, keeping the start and end.
    """

    def __init__(
        self,
        tools: list[ToolDefinition] | None = None,
        *,
        backend: ToolBackend | None = None,
        handlers: dict[str, ToolHandler] | None = None,
        max_concurrency: int = 4,
        timeout: float | None = 30.0,
        result_max_length: int = 16384,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self._definitions: dict[str, ToolDefinition] = {t.name: t for t in tools or []}
        self._handlers: dict[str, ToolHandler] = dict(handlers or {})
        unknown = set(self._handlers) - set(self._definitions)
        if unknown:
            raise ValueError(f"Handlers for undeclared tools: {sorted(unknown)}")
        self._backend = backend
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._max_concurrency = max_concurrency
        self._timeout = timeout
        self._result_max_length = result_max_length
        self._in_flight = 0

    @property
    def definitions(self) -> list[ToolDefinition]:
        return list(self._definitions.values())

    @property
    def in_flight(self) -> int:
        """Invocations currently holding a concurrency slot."""
        return self._in_flight

    def declarations(self) -> list[FunctionDeclaration]:
        """Function declarations for the session ``setup`` envelope."""
        return [t.to_declaration() for t in self._definitions.values()]

    def register(self, definition: ToolDefinition, handler: ToolHandler | None = None) -> None:
        """Add a tool to the catalogue, optionally with its own handler."""
        self._definitions[definition.name] = definition
        if handler is not None:
            self._handlers[definition.name] = handler

    def has_tool(self, name: str) -> bool:
        return name in self._definitions

    async def execute(self, name: str, args: dict[str, Any]) -> Any:
        """Invoke tool *name* with *args* and return its result.

        Raises:
            ToolNotFoundError: *name* is not declared or has no executor.
            ToolTimeoutError: The invocation exceeded ``timeout``.
            ToolExecutionError: The handler or backend failed.
        """
        if name not in self._definitions:
            raise ToolNotFoundError(f"Unknown tool: {name}", tool_name=name)
        handler = self._handlers.get(name)
        if handler is None and self._backend is None:
            raise ToolNotFoundError(f"No handler for tool {name}", tool_name=name)

        async with self._semaphore:
            self._in_flight += 1
            try:
                return await asyncio.wait_for(self._invoke(name, handler, args), self._timeout)
            except TimeoutError as exc:
                raise ToolTimeoutError(
                    f"Tool {name} timed out after {self._timeout}s", tool_name=name
                ) from exc
            except (ToolError, asyncio.CancelledError):
                raise
            except Exception as exc:
                raise ToolExecutionError(
                    f"Tool {name} failed: {type(exc).__name__}: {exc}", tool_name=name
                ) from exc
            finally:
                self._in_flight -= 1

    async def _invoke(self, name: str, handler: ToolHandler | None, args: dict[str, Any]) -> Any:
        if handler is None:
            assert self._backend is not None
            return await self._backend.invoke(name, args)
        result = handler(args)
        if hasattr(result, "__await__"):
            result = await result
        return result

    async def handle_call(self, call: ToolCall) -> ToolResponse:
        """Execute *call* and return its correlated response.

        Never raises for tool failures: errors become a response whose
        ``error`` field is set, carrying the same ``id`` as the call.
        """
        logger.info("Executing tool: %s(%s)", call.name, call.id)
        try:
            result = await self.execute(call.name, call.args)
        except ToolNotFoundError as exc:
            logger.warning("Tool call %s rejected: %s", call.id, exc)
            return ToolResponse(id=call.id, name=call.name, error=str(exc))
        except ToolError as exc:
            logger.warning("Tool %s raised %s: %s", call.name, type(exc).__name__, exc)
            return ToolResponse(id=call.id, name=call.name, error=str(exc))
        try:
            normalized = self._normalize(result)
        except (TypeError, ValueError) as exc:
            logger.warning("Tool %s returned an unserializable result: %s", call.name, exc)
            return ToolResponse(
                id=call.id, name=call.name, error=f"Tool result is not JSON-serializable: {exc}"
            )
        return ToolResponse(id=call.id, name=call.name, result=normalized)

    def _normalize(self, result: Any) -> Any:
        """Make *result* JSON-safe and truncate oversized payloads."""
        serialized = json.dumps(result, default=str)
        if len(serialized) <= self._result_max_length:
            return json.loads(serialized)
        half = self._result_max_length // 2
        dropped = len(serialized) - 2 * half
        logger.warning("Truncating tool result (%d chars)", len(serialized))
        return serialized[:half] + f"\n\n[... truncated {dropped} chars ...]\n\n" + serialized[-half:]
