"""Model-call types for the scoring workflow: messages, parts, tools and the provider ABC."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Literal

from pydantic import BaseModel, Field


class AITextPart(BaseModel):
    """Plain text evidence or instruction."""

    type: Literal["text"] = "text"
    text: str


class AIAudioPart(BaseModel):
    """Inline audio bytes for models with native audio understanding."""

    type: Literal["audio"] = "audio"
    data: bytes
    mime_type: str = "audio/mpeg"


class AITool(BaseModel):
    """A function the model may call while grading."""

    name: str
    description: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class AIToolCall(BaseModel):
    """A function call requested by the model in its reply."""

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class AIToolCallPart(BaseModel):
    """Echo of a requested call, replayed in the next step's history."""

    type: Literal["tool_call"] = "tool_call"
    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class AIToolResultPart(BaseModel):
    """JSON-encoded answer to a requested call."""

    type: Literal["tool_result"] = "tool_result"
    tool_call_id: str
    name: str
    result: str


class ProviderError(Exception):
    """A model call failed.

    Attributes:
        retryable: True for rate limits and transient server faults.
        provider: Short provider name, e.g. ``"gemini"``.
        status_code: Upstream HTTP status, when known.
    """

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = False,
        provider: str = "",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.provider = provider
        self.status_code = status_code


AIPart = AITextPart | AIAudioPart | AIToolCallPart | AIToolResultPart


class AIMessage(BaseModel):
    """One turn of the grading conversation."""

    role: str  # user | assistant | tool
    content: str | list[AIPart]
    metadata: dict[str, Any] = Field(default_factory=dict)


class AIContext(BaseModel):
    """Everything one model call needs.

    ``model`` overrides the provider's configured model for this request.
    ``response_schema`` is a JSON schema the final answer must follow.
    """

    messages: list[AIMessage] = Field(default_factory=list)
    model: str | None = None
    system_prompt: str | None = None
    temperature: float = 0.2
    max_tokens: int = 2048
    tools: list[AITool] = Field(default_factory=list)
    response_schema: dict[str, Any] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class AIResponse(BaseModel):
    """Text answer and any requested calls from one model call."""

    content: str
    finish_reason: str | None = None
    usage: dict[str, int] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    tool_calls: list[AIToolCall] = Field(default_factory=list)


class AIProvider(ABC):
    """A model backend able to grade from text and inline audio."""

    @property
    def name(self) -> str:
        """Short identifier used in logs and errors."""
        return self.__class__.__name__

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model used when the context names none."""
        ...

    @abstractmethod
    async def generate(self, context: AIContext) -> AIResponse:
        """Run one model call.

        Raises:
            ProviderError: If the upstream call failed.
        """
        ...

    async def close(self) -> None:  # noqa: B027
        """Release resources.  Default is a no-op."""
