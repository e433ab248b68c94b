"""Mock AI provider for testing."""

from __future__ import annotations

from ptekit.providers.ai.base import AIContext, AIProvider, AIResponse, ProviderError


class MockAIProvider(AIProvider):
    """Round-robin response provider for tests.

    ``responses`` are returned as plain content; ``ai_responses`` (when
    given) are returned as-is, which allows scripting tool calls.  Setting
    ``error`` makes every call raise it.
    """

    def __init__(
        self,
        responses: list[str] | None = None,
        *,
        ai_responses: list[AIResponse] | None = None,
        error: ProviderError | None = None,
    ) -> None:
        self.responses = responses or ['{"overallScore": 65}']
        self._ai_responses = ai_responses
        self.error = error
        self.calls: list[AIContext] = []
        self._index = 0

    @property
    def model_name(self) -> str:
        return "mock"

    async def generate(self, context: AIContext) -> AIResponse:
        self.calls.append(context)
        if self.error is not None:
            raise self.error
        if self._ai_responses:
            resp = self._ai_responses[self._index % len(self._ai_responses)]
            self._index += 1
            return resp
        content = self.responses[self._index % len(self.responses)]
        self._index += 1
        return AIResponse(
            content=content,
            finish_reason="stop",
            usage={"prompt_tokens": 10, "completion_tokens": 5},
        )
