"""Mock tool backend for testing."""

from __future__ import annotations

import asyncio
from typing import Any

from ptekit.audio.mock import MockCall
from ptekit.tools.base import ToolBackend, ToolExecutionError


class MockToolBackend(ToolBackend):
    """Returns canned results per tool name and records every invocation.

    Example:
        backend = MockToolBackend({"getUserWeakAreas": {"weakAreas": ["writing"]}})
        backend.fail("updateStudyGoals", "database unavailable")
    """

    def __init__(self, results: dict[str, Any] | None = None, *, delay: float = 0.0) -> None:
        self.calls: list[MockCall] = []
        self.results: dict[str, Any] = dict(results or {})
        self.delay = delay
        self._failures: dict[str, str] = {}
        self.closed = False

    def fail(self, tool_name: str, message: str) -> None:
        """Make every later invocation of *tool_name* raise."""
        self._failures[tool_name] = message

    async def invoke(self, tool_name: str, args: dict[str, Any]) -> Any:
        self.calls.append(MockCall("invoke", {"tool_name": tool_name, "args": args}))
        if self.delay:
            await asyncio.sleep(self.delay)
        if tool_name in self._failures:
            raise ToolExecutionError(self._failures[tool_name], tool_name=tool_name)
        return self.results.get(tool_name, {"ok": True})

    async def close(self) -> None:
        self.closed = True
