"""Google Gemini AI provider: structured generation with native audio input."""

from __future__ import annotations

import json
from typing import Any, cast

from ptekit.providers.ai.base import (
    AIAudioPart,
    AIContext,
    AIMessage,
    AIProvider,
    AIResponse,
    AITextPart,
    AIToolCall,
    AIToolCallPart,
    AIToolResultPart,
    ProviderError,
)
from ptekit.providers.gemini.config import GeminiConfig


class GeminiAIProvider(AIProvider):
    """AI provider using the Google Gemini API.

    When ``AIContext.response_schema`` is set and no tools are offered,
    the request runs in JSON mode against that schema.  Gemini does not
    combine function calling with JSON mode on every model, so with tools
    present the schema is appended to the system instruction instead.
    """

    def __init__(self, config: GeminiConfig) -> None:
        try:
            from google import genai as _genai
            from google.genai import types as _types
        except ImportError as exc:
            raise ImportError(
                "google-genai is required for GeminiAIProvider. "
                "Install it with: pip install 'ptekit[gemini]'"
            ) from exc

        self._config = config
        self._genai = _genai
        self._types = _types
        self._client = _genai.Client(api_key=config.api_key.get_secret_value())

    @property
    def name(self) -> str:
        return "gemini"

    @property
    def model_name(self) -> str:
        return self._config.model

    def _format_messages(self, messages: list[AIMessage]) -> list[Any]:
        """Convert AIMessage list to Gemini Content format."""
        contents = []
        for msg in messages:
            role = "model" if msg.role == "assistant" else "user"
            contents.append(self._types.Content(role=role, parts=self._format_content(msg.content)))
        return contents

    def _format_content(self, content: str | list[Any]) -> list[Any]:
        if isinstance(content, str):
            return [self._types.Part.from_text(text=content)]

        parts = []
        for item in content:
            if isinstance(item, AITextPart):
                parts.append(self._types.Part.from_text(text=item.text))
            elif isinstance(item, AIAudioPart):
                parts.append(self._types.Part.from_bytes(data=item.data, mime_type=item.mime_type))
            elif isinstance(item, AIToolCallPart):
                parts.append(
                    self._types.Part.from_function_call(name=item.name, args=item.arguments)
                )
            elif isinstance(item, AIToolResultPart):
                parts.append(
                    self._types.Part.from_function_response(
                        name=item.name,
                        response={"result": item.result},
                    )
                )
        return parts

    def _build_gen_config(self, context: AIContext) -> Any:
        """Build Gemini generation config from AIContext."""
        gen_config = self._types.GenerateContentConfig(
            temperature=context.temperature,
            max_output_tokens=context.max_tokens,
        )

        system_prompt = context.system_prompt
        if context.tools:
            func_decls = [
                self._types.FunctionDeclaration(
                    name=t.name,
                    description=t.description,
                    # Cast to Any: Gemini SDK accepts dict as Schema at runtime
                    parameters=cast(Any, t.parameters) if t.parameters else None,
                )
                for t in context.tools
            ]
            gen_config.tools = [self._types.Tool(function_declarations=func_decls)]
            if context.response_schema is not None:
                schema = json.dumps(context.response_schema)
                system_prompt = (
                    f"{system_prompt or ''}\n\n"
                    "When you give your final answer, reply with only a JSON object "
                    f"matching this JSON schema:\n{schema}"
                ).strip()
        elif context.response_schema is not None:
            gen_config.response_mime_type = "application/json"
            gen_config.response_json_schema = context.response_schema

        if system_prompt:
            gen_config.system_instruction = system_prompt
        return gen_config

    def _wrap_error(self, exc: Exception) -> ProviderError:
        """Wrap an SDK exception into a ProviderError."""
        status_code = getattr(exc, "code", None) or getattr(exc, "status_code", None)
        if not isinstance(status_code, int):
            status_code = None
        retryable = (
            status_code in (429, 500, 502, 503)
            if status_code
            else any(
                term in str(exc).lower() for term in ["rate", "limit", "429", "500", "502", "503"]
            )
        )
        return ProviderError(
            str(exc),
            retryable=retryable,
            provider="gemini",
            status_code=status_code,
        )

    async def generate(self, context: AIContext) -> AIResponse:
        model = context.model or self._config.model
        try:
            response = await self._client.aio.models.generate_content(
                model=model,
                contents=self._format_messages(context.messages),
                config=self._build_gen_config(context),
            )
        except Exception as exc:
            raise self._wrap_error(exc) from exc

        text_parts: list[str] = []
        tool_calls: list[AIToolCall] = []
        finish_reason: str | None = None
        candidates = getattr(response, "candidates", None) or []
        if candidates:
            candidate = candidates[0]
            reason = getattr(candidate, "finish_reason", None)
            finish_reason = str(reason) if reason is not None else None
            parts = candidate.content.parts if candidate.content else None
            for i, part in enumerate(parts or []):
                if getattr(part, "text", None):
                    text_parts.append(part.text)
                elif getattr(part, "function_call", None):
                    fc = part.function_call
                    fc_name: str = fc.name or ""
                    tool_calls.append(
                        AIToolCall(
                            id=getattr(fc, "id", None) or f"{fc_name}-{i}",
                            name=fc_name,
                            arguments=dict(fc.args) if fc.args else {},
                        )
                    )

        usage: dict[str, int] = {}
        meta = getattr(response, "usage_metadata", None)
        if meta is not None:
            usage = {
                "prompt_tokens": meta.prompt_token_count or 0,
                "completion_tokens": meta.candidates_token_count or 0,
            }

        return AIResponse(
            content="".join(text_parts),
            finish_reason=finish_reason,
            usage=usage,
            tool_calls=tool_calls,
            metadata={"model": model},
        )

    async def close(self) -> None:
        """Release the genai client reference."""
        self._client = None  # type: ignore[assignment]
