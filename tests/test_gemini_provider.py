"""Tests for the Google Gemini scoring provider."""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ptekit.providers.ai.base import (
    AIAudioPart,
    AIContext,
    AIMessage,
    AITextPart,
    AITool,
    AIToolResultPart,
    ProviderError,
)
from ptekit.providers.gemini.config import GeminiConfig


def _mock_genai_module() -> MagicMock:
    """Return a MagicMock that behaves like the google.genai module."""
    mod = MagicMock()

    types = MagicMock()
    types.Content = MagicMock(side_effect=lambda **kw: SimpleNamespace(**kw))
    types.Part.from_text = MagicMock(side_effect=lambda text: SimpleNamespace(text=text))
    types.Part.from_bytes = MagicMock(
        side_effect=lambda data, mime_type: SimpleNamespace(data=data, mime_type=mime_type)
    )
    types.Part.from_function_response = MagicMock(
        side_effect=lambda name, response: SimpleNamespace(name=name, response=response)
    )
    types.GenerateContentConfig = MagicMock(side_effect=lambda **kw: SimpleNamespace(**kw))
    types.FunctionDeclaration = MagicMock(side_effect=lambda **kw: SimpleNamespace(**kw))
    types.Tool = MagicMock(side_effect=lambda **kw: SimpleNamespace(**kw))
    mod.types = types

    client_instance = MagicMock()
    client_instance.aio.models.generate_content = AsyncMock()
    mod.Client.return_value = client_instance
    return mod


def _genai_modules(mock_genai: MagicMock) -> dict[str, Any]:
    return {
        "google": MagicMock(genai=mock_genai),
        "google.genai": mock_genai,
    }


def _config(**overrides: Any) -> GeminiConfig:
    defaults: dict[str, Any] = {"api_key": "test-api-key"}
    defaults.update(overrides)
    return GeminiConfig(**defaults)


def _mock_response(
    text: str | None = '{"overallScore": 70}',
    tool_calls: list[dict[str, Any]] | None = None,
) -> SimpleNamespace:
    parts = []
    if text is not None:
        parts.append(SimpleNamespace(text=text, function_call=None))
    for tc in tool_calls or []:
        parts.append(
            SimpleNamespace(
                text=None,
                function_call=SimpleNamespace(name=tc["name"], args=tc.get("args", {})),
            )
        )
    return SimpleNamespace(
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts), finish_reason="STOP")],
        usage_metadata=SimpleNamespace(prompt_token_count=12, candidates_token_count=30),
    )


def _context(**overrides: Any) -> AIContext:
    defaults: dict[str, Any] = {"messages": [AIMessage(role="user", content="Score this")]}
    defaults.update(overrides)
    return AIContext(**defaults)


class TestGeminiAIProvider:
    async def test_generate_json_mode(self) -> None:
        mock_genai = _mock_genai_module()
        with patch.dict("sys.modules", _genai_modules(mock_genai)):
            from ptekit.providers.gemini.ai import GeminiAIProvider

            provider = GeminiAIProvider(_config())
            generate = provider._client.aio.models.generate_content
            generate.return_value = _mock_response()

            schema = {"type": "object", "properties": {"overallScore": {"type": "number"}}}
            result = await provider.generate(
                _context(model="gemini-2.5-flash", system_prompt="Examiner", response_schema=schema)
            )

            assert result.content == '{"overallScore": 70}'
            assert result.usage == {"prompt_tokens": 12, "completion_tokens": 30}
            assert result.metadata["model"] == "gemini-2.5-flash"

            kwargs = generate.call_args.kwargs
            assert kwargs["model"] == "gemini-2.5-flash"
            config = kwargs["config"]
            assert config.response_mime_type == "application/json"
            assert config.response_json_schema == schema
            assert config.system_instruction == "Examiner"

    async def test_default_model(self) -> None:
        mock_genai = _mock_genai_module()
        with patch.dict("sys.modules", _genai_modules(mock_genai)):
            from ptekit.providers.gemini.ai import GeminiAIProvider

            provider = GeminiAIProvider(_config(model="gemini-2.5-pro"))
            provider._client.aio.models.generate_content.return_value = _mock_response()
            result = await provider.generate(_context())
            assert result.metadata["model"] == "gemini-2.5-pro"

    async def test_audio_part_sent_inline(self) -> None:
        mock_genai = _mock_genai_module()
        with patch.dict("sys.modules", _genai_modules(mock_genai)):
            from ptekit.providers.gemini.ai import GeminiAIProvider

            provider = GeminiAIProvider(_config())
            generate = provider._client.aio.models.generate_content
            generate.return_value = _mock_response()

            await provider.generate(
                _context(
                    messages=[
                        AIMessage(
                            role="user",
                            content=[
                                AITextPart(text="Question Prompt: Read"),
                                AIAudioPart(data=b"ID3", mime_type="audio/wav"),
                            ],
                        )
                    ]
                )
            )

            contents = generate.call_args.kwargs["contents"]
            assert contents[0].role == "user"
            assert contents[0].parts[1].data == b"ID3"
            assert contents[0].parts[1].mime_type == "audio/wav"

    async def test_tools_move_schema_into_instruction(self) -> None:
        mock_genai = _mock_genai_module()
        with patch.dict("sys.modules", _genai_modules(mock_genai)):
            from ptekit.providers.gemini.ai import GeminiAIProvider

            provider = GeminiAIProvider(_config())
            generate = provider._client.aio.models.generate_content
            generate.return_value = _mock_response(
                text=None,
                tool_calls=[
                    {"name": "retrieveScoringCriteria", "args": {"questionType": "read_aloud"}}
                ],
            )
            tool = AITool(name="retrieveScoringCriteria", description="Rubric lookup")

            result = await provider.generate(
                _context(system_prompt="Examiner", tools=[tool], response_schema={"a": 1})
            )

            assert result.content == ""
            assert len(result.tool_calls) == 1
            call = result.tool_calls[0]
            assert call.name == "retrieveScoringCriteria"
            assert call.arguments == {"questionType": "read_aloud"}
            assert call.id == "retrieveScoringCriteria-0"

            config = generate.call_args.kwargs["config"]
            assert config.tools[0].function_declarations[0].name == "retrieveScoringCriteria"
            assert json.dumps({"a": 1}) in config.system_instruction
            assert not hasattr(config, "response_mime_type")

    async def test_tool_results_formatted(self) -> None:
        mock_genai = _mock_genai_module()
        with patch.dict("sys.modules", _genai_modules(mock_genai)):
            from ptekit.providers.gemini.ai import GeminiAIProvider

            provider = GeminiAIProvider(_config())
            generate = provider._client.aio.models.generate_content
            generate.return_value = _mock_response()

            await provider.generate(
                _context(
                    messages=[
                        AIMessage(role="user", content="Score"),
                        AIMessage(
                            role="tool",
                            content=[
                                AIToolResultPart(
                                    tool_call_id="c1", name="retrieveScoringCriteria", result="{}"
                                )
                            ],
                        ),
                    ]
                )
            )
            contents = generate.call_args.kwargs["contents"]
            assert contents[1].role == "user"
            assert contents[1].parts[0].response == {"result": "{}"}

    async def test_sdk_error_wrapped(self) -> None:
        mock_genai = _mock_genai_module()
        with patch.dict("sys.modules", _genai_modules(mock_genai)):
            from ptekit.providers.gemini.ai import GeminiAIProvider

            provider = GeminiAIProvider(_config())
            error = RuntimeError("429 rate limit exceeded")
            provider._client.aio.models.generate_content.side_effect = error

            with pytest.raises(ProviderError) as exc_info:
                await provider.generate(_context())
            assert exc_info.value.retryable
            assert exc_info.value.provider == "gemini"

    async def test_non_retryable_error(self) -> None:
        mock_genai = _mock_genai_module()
        with patch.dict("sys.modules", _genai_modules(mock_genai)):
            from ptekit.providers.gemini.ai import GeminiAIProvider

            provider = GeminiAIProvider(_config())
            error = RuntimeError("invalid argument")
            error.code = 400  # type: ignore[attr-defined]
            provider._client.aio.models.generate_content.side_effect = error

            with pytest.raises(ProviderError) as exc_info:
                await provider.generate(_context())
            assert not exc_info.value.retryable
            assert exc_info.value.status_code == 400

    def test_missing_sdk(self) -> None:
        with patch.dict("sys.modules", {"google": None, "google.genai": None}):
            from ptekit.providers.gemini.ai import GeminiAIProvider

            with pytest.raises(ImportError, match="ptekit\\[gemini\\]"):
                GeminiAIProvider(_config())
