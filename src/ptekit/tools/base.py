"""Tool catalogue models, errors and the backend interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from ptekit.protocol import FunctionDeclaration, FunctionResponse


class ToolDefinition(BaseModel):
    """A callable capability declared to the model.

    ``parameters`` is a JSON-schema object describing the arguments.
    """

    name: str
    description: str
    parameters: dict[str, Any] = Field(default_factory=dict)

    def to_declaration(self) -> FunctionDeclaration:
        return FunctionDeclaration(
            name=self.name,
            description=self.description,
            parameters=self.parameters or None,
        )


class ToolCall(BaseModel):
    """A model-issued request to invoke a tool."""

    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolResponse(BaseModel):
    """The single correlated answer to a :class:`ToolCall`.

    Exactly one of ``result`` / ``error`` is meaningful: ``error`` is set
    when the call failed, in which case ``result`` is ``None``.
    """

    id: str
    name: str
    result: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_function_response(self) -> FunctionResponse:
        payload = {"result": self.result} if self.ok else {"error": self.error}
        return FunctionResponse(id=self.id, name=self.name, response=payload)


class ToolError(Exception):
    """A tool invocation failed.

    Attributes:
        tool_name: Name of the tool that was requested.
    """

    def __init__(self, message: str, *, tool_name: str) -> None:
        super().__init__(message)
        self.tool_name = tool_name


class ToolNotFoundError(ToolError):
    """The requested tool is not in the declared catalogue."""


class ToolExecutionError(ToolError):
    """The tool backend raised or returned an error."""


class ToolTimeoutError(ToolError):
    """The tool did not finish within its time limit."""


class ToolBackend(ABC):
    """External service that executes tools: ``(toolName, args) -> JSON``."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    async def invoke(self, tool_name: str, args: dict[str, Any]) -> Any:
        """Run *tool_name* with *args* and return its JSON-compatible result.

        Raises:
            ToolExecutionError: If the backend reports a failure.
        """
        ...

    async def close(self) -> None:  # noqa: B027
        """Release resources.  Default is a no-op."""
