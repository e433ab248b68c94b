"""Tests for ScoringOrchestrator."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from ptekit.providers.ai.base import (
    AIAudioPart,
    AIResponse,
    AITextPart,
    AIToolCall,
    AIToolCallPart,
    AIToolResultPart,
    ProviderError,
)
from ptekit.providers.ai.mock import MockAIProvider
from ptekit.scoring import (
    InvalidSubmissionError,
    MalformedOutputError,
    QuestionType,
    ScoringConfig,
    ScoringOrchestrator,
    ScoringRequest,
    StepLimitExceededError,
    TranscriptionConfig,
    TranscriptionPoller,
    UpstreamFailureError,
)
from ptekit.scoring.fetch import HTTPAudioFetcher
from ptekit.scoring.mock import MockAudioFetcher, MockTranscriptionBackend
from ptekit.scoring.transcription import TranscriptionStatus, TranscriptionUpdate

AUDIO_URL = "https://cdn.test/answers/42.mp3"

REPORT = {
    "overallScore": 72,
    "pronunciation": {"score": 4, "feedback": "Clear vowels"},
    "fluency": {"score": 3, "feedback": "Some hesitation"},
    "suggestions": ["Pause at commas"],
    "strengths": ["Good pace"],
    "areasForImprovement": ["Linking words"],
}


def _poller(backend: MockTranscriptionBackend) -> TranscriptionPoller:
    return TranscriptionPoller(backend, TranscriptionConfig(poll_interval=0.001, max_duration=1.0))


def _orchestrator(
    provider: MockAIProvider,
    *,
    fetcher: MockAudioFetcher | None = None,
    backend: MockTranscriptionBackend | None = None,
    config: ScoringConfig | None = None,
) -> ScoringOrchestrator:
    return ScoringOrchestrator(
        provider,
        fetcher=fetcher or MockAudioFetcher(),
        transcriber=_poller(backend or MockTranscriptionBackend()),
        config=config,
    )


def _texts(parts: list) -> list[str]:
    return [p.text for p in parts if isinstance(p, AITextPart)]


class TestValidation:
    async def test_text_and_audio_rejected_before_any_work(self) -> None:
        provider = MockAIProvider([json.dumps(REPORT)])
        fetcher = MockAudioFetcher()
        backend = MockTranscriptionBackend()
        orch = _orchestrator(provider, fetcher=fetcher, backend=backend)

        result = await orch.score_submission(
            QuestionType.READ_ALOUD, "Read this", text="hello", audio_url=AUDIO_URL
        )

        assert not result.ok
        assert isinstance(result.error, InvalidSubmissionError)
        assert result.error.request.submission_text == "hello"
        assert provider.calls == []
        assert fetcher.fetched == []
        assert backend.submitted == []

    async def test_empty_submission_rejected(self) -> None:
        provider = MockAIProvider()
        result = await _orchestrator(provider).score_submission(
            QuestionType.WRITE_ESSAY, "Topic"
        )
        assert isinstance(result.error, InvalidSubmissionError)
        assert provider.calls == []

    async def test_unwrap_raises_the_error(self) -> None:
        result = await _orchestrator(MockAIProvider()).score_submission(
            QuestionType.WRITE_ESSAY, "Topic", text=" "
        )
        with pytest.raises(InvalidSubmissionError):
            result.unwrap()


class TestTextSubmission:
    async def test_essay_report(self) -> None:
        provider = MockAIProvider([json.dumps(REPORT)])
        result = await _orchestrator(provider).score_submission(
            QuestionType.WRITE_ESSAY, "Discuss remote work.", text="Remote work has..."
        )

        report = result.unwrap()
        assert 0 <= report.overall_score <= 90
        assert report.suggestions == ["Pause at commas"]
        assert result.model == "gemini-2.5-pro"
        assert result.steps == 1
        assert result.usage == {"prompt_tokens": 10, "completion_tokens": 5}

        context = provider.calls[0]
        assert context.model == "gemini-2.5-pro"
        assert "overallScore" in context.response_schema["properties"]
        assert "Write Essay Scoring Criteria" in context.system_prompt
        assert _texts(context.messages[0].content) == [
            "Question Prompt: Discuss remote work.",
            "User Text Response: Remote work has...",
        ]

    async def test_missing_arrays_become_empty(self) -> None:
        provider = MockAIProvider(['{"overallScore": 40, "suggestions": null}'])
        result = await _orchestrator(provider).score_submission(
            QuestionType.ANSWER_SHORT_QUESTION, "What is...?", text="A thermometer"
        )
        report = result.unwrap()
        assert report.suggestions == []
        assert report.strengths == []
        assert report.areas_for_improvement == []
        assert result.model == "gemini-2.5-flash"

    async def test_fenced_json_accepted(self) -> None:
        provider = MockAIProvider(["```json\n" + json.dumps(REPORT) + "\n```"])
        result = await _orchestrator(provider).score_submission(
            QuestionType.SUMMARIZE_WRITTEN_TEXT, "Passage", text="One sentence."
        )
        assert result.unwrap().overall_score == 72


class TestFailures:
    async def test_not_json(self) -> None:
        provider = MockAIProvider(["I think this deserves a 70."])
        result = await _orchestrator(provider).score_submission(
            QuestionType.WRITE_ESSAY, "Topic", text="essay"
        )
        assert isinstance(result.error, MalformedOutputError)
        assert result.error.retryable
        assert result.error.raw_output == "I think this deserves a 70."
        assert result.error.request.submission_text == "essay"
        assert result.report is None

    async def test_score_out_of_range(self) -> None:
        provider = MockAIProvider(['{"overallScore": 120}'])
        result = await _orchestrator(provider).score_submission(
            QuestionType.WRITE_ESSAY, "Topic", text="essay"
        )
        assert isinstance(result.error, MalformedOutputError)

    async def test_missing_overall_score(self) -> None:
        provider = MockAIProvider(['{"suggestions": []}'])
        result = await _orchestrator(provider).score_submission(
            QuestionType.WRITE_ESSAY, "Topic", text="essay"
        )
        assert isinstance(result.error, MalformedOutputError)

    async def test_provider_error(self) -> None:
        provider = MockAIProvider(error=ProviderError("quota", retryable=True, provider="mock"))
        result = await _orchestrator(provider).score_submission(
            QuestionType.WRITE_ESSAY, "Topic", text="essay"
        )
        assert isinstance(result.error, UpstreamFailureError)
        assert result.error.retryable


class TestToolLoop:
    async def test_criteria_tool_then_answer(self) -> None:
        provider = MockAIProvider(
            ai_responses=[
                AIResponse(
                    content="",
                    tool_calls=[
                        AIToolCall(
                            id="c1",
                            name="retrieveScoringCriteria",
                            arguments={"questionType": "repeat_sentence"},
                        )
                    ],
                ),
                AIResponse(content=json.dumps(REPORT)),
            ]
        )
        result = await _orchestrator(provider).score_submission(
            QuestionType.WRITE_ESSAY, "Topic", text="essay"
        )

        assert result.unwrap().overall_score == 72
        assert result.steps == 2
        assert [t.name for t in provider.calls[0].tools] == ["retrieveScoringCriteria"]

        second = provider.calls[1].messages
        assert second[1].role == "assistant"
        assert isinstance(second[1].content[0], AIToolCallPart)
        assert second[2].role == "tool"
        tool_result = second[2].content[0]
        assert isinstance(tool_result, AIToolResultPart)
        assert tool_result.tool_call_id == "c1"
        payload = json.loads(tool_result.result)
        assert "Repeat Sentence Scoring Criteria" in payload["result"]["criteria"]

    async def test_unknown_tool_is_answered_with_error(self) -> None:
        provider = MockAIProvider(
            ai_responses=[
                AIResponse(content="", tool_calls=[AIToolCall(id="x", name="browse")]),
                AIResponse(content=json.dumps(REPORT)),
            ]
        )
        result = await _orchestrator(provider).score_submission(
            QuestionType.WRITE_ESSAY, "Topic", text="essay"
        )
        assert result.ok
        tool_result = provider.calls[1].messages[2].content[0]
        assert "error" in json.loads(tool_result.result)

    async def test_step_limit(self) -> None:
        looping = AIResponse(
            content="",
            tool_calls=[
                AIToolCall(
                    id="c", name="retrieveScoringCriteria", arguments={"questionType": "x"}
                )
            ],
        )
        provider = MockAIProvider(ai_responses=[looping])
        result = await _orchestrator(provider, config=ScoringConfig(max_steps=3)).score_submission(
            QuestionType.WRITE_ESSAY, "Topic", text="essay"
        )

        assert isinstance(result.error, StepLimitExceededError)
        assert len(provider.calls) == 3
        assert provider.calls[-1].tools == []

    async def test_final_step_offers_no_tools(self) -> None:
        provider = MockAIProvider([json.dumps(REPORT)])
        result = await _orchestrator(provider, config=ScoringConfig(max_steps=1)).score_submission(
            QuestionType.WRITE_ESSAY, "Topic", text="essay"
        )
        assert result.ok
        assert provider.calls[0].tools == []


class TestAudioSubmission:
    async def test_audio_and_transcript_attached(self) -> None:
        provider = MockAIProvider([json.dumps(REPORT)])
        fetcher = MockAudioFetcher(b"ID3audio")
        backend = MockTranscriptionBackend(
            [
                TranscriptionUpdate(status=TranscriptionStatus.PROCESSING),
                TranscriptionUpdate(
                    status=TranscriptionStatus.COMPLETED, transcript="the cat sat on the mat"
                ),
            ]
        )
        result = await _orchestrator(provider, fetcher=fetcher, backend=backend).score_submission(
            QuestionType.READ_ALOUD, "The cat sat on the mat.", audio_url=AUDIO_URL
        )

        assert result.ok
        assert result.audio_attached
        assert result.transcript == "the cat sat on the mat"
        assert fetcher.fetched == [AUDIO_URL]
        assert backend.submitted == [AUDIO_URL]

        parts = provider.calls[0].messages[0].content
        audio = [p for p in parts if isinstance(p, AIAudioPart)]
        assert len(audio) == 1
        assert audio[0].data == b"ID3audio"
        assert any("Verified transcript" in t and "the cat sat" in t for t in _texts(parts))

    async def test_fetch_failure_continues_with_transcript(self) -> None:
        provider = MockAIProvider([json.dumps(REPORT)])
        result = await _orchestrator(
            provider, fetcher=MockAudioFetcher(fail=True)
        ).score_submission(QuestionType.REPEAT_SENTENCE, "Sentence", audio_url=AUDIO_URL)

        assert result.ok
        assert not result.audio_attached
        assert result.transcript == "hello world"
        parts = provider.calls[0].messages[0].content
        assert not any(isinstance(p, AIAudioPart) for p in parts)
        assert any("unavailable" in t for t in _texts(parts))

    async def test_transcription_failure_continues_with_audio(self) -> None:
        provider = MockAIProvider([json.dumps(REPORT)])
        backend = MockTranscriptionBackend(
            [TranscriptionUpdate(status=TranscriptionStatus.ERROR, error="bad file")]
        )
        result = await _orchestrator(provider, backend=backend).score_submission(
            QuestionType.DESCRIBE_IMAGE, "Describe", audio_url=AUDIO_URL
        )
        assert result.ok
        assert result.audio_attached
        assert result.transcript is None

    async def test_malformed_audio_url_scored_from_transcript(self) -> None:
        provider = MockAIProvider([json.dumps(REPORT)])
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, content=b"ID3"))
        )
        orch = ScoringOrchestrator(
            provider,
            fetcher=HTTPAudioFetcher(client=client),
            transcriber=_poller(MockTranscriptionBackend()),
        )
        result = await orch.score_submission(
            QuestionType.READ_ALOUD, "Read", audio_url="http://example.com:abc/a.mp3"
        )
        assert result.ok
        assert not result.audio_attached
        assert result.transcript == "hello world"
        await client.aclose()

    async def test_malformed_audio_url_without_transcriber(self) -> None:
        provider = MockAIProvider([json.dumps(REPORT)])
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, content=b"ID3"))
        )
        orch = ScoringOrchestrator(provider, fetcher=HTTPAudioFetcher(client=client))
        result = await orch.score_submission(
            QuestionType.READ_ALOUD, "Read", audio_url="http://example.com:abc/a.mp3"
        )
        assert not result.ok
        assert isinstance(result.error, UpstreamFailureError)
        assert provider.calls == []
        await client.aclose()

    async def test_no_evidence_is_upstream_failure(self) -> None:
        provider = MockAIProvider([json.dumps(REPORT)])
        result = await _orchestrator(
            provider,
            fetcher=MockAudioFetcher(fail=True),
            backend=MockTranscriptionBackend(missing_credentials=True),
        ).score_submission(QuestionType.READ_ALOUD, "Read", audio_url=AUDIO_URL)

        assert isinstance(result.error, UpstreamFailureError)
        assert provider.calls == []

    async def test_stuck_transcription_bounded(self) -> None:
        provider = MockAIProvider([json.dumps(REPORT)])
        backend = MockTranscriptionBackend(
            [TranscriptionUpdate(status=TranscriptionStatus.PROCESSING)]
        )
        orch = ScoringOrchestrator(
            provider,
            fetcher=MockAudioFetcher(),
            transcriber=TranscriptionPoller(
                backend, TranscriptionConfig(poll_interval=0.01, max_duration=0.05)
            ),
        )
        result = await asyncio.wait_for(
            orch.score_submission(QuestionType.READ_ALOUD, "Read", audio_url=AUDIO_URL),
            timeout=2.0,
        )
        assert result.ok
        assert result.transcript is None


class TestObjective:
    async def test_answer_key_scored_without_model(self) -> None:
        provider = MockAIProvider()
        result = await _orchestrator(provider).score(
            ScoringRequest(
                question_type=QuestionType.REORDER_PARAGRAPHS,
                prompt_text="Order the paragraphs",
                submission_text="A\nB\nC",
                answer_key=["A", "B", "C"],
            )
        )
        assert result.unwrap().overall_score == 90
        assert provider.calls == []

    async def test_objective_audio_rejected(self) -> None:
        provider = MockAIProvider()
        result = await _orchestrator(provider).score(
            ScoringRequest(
                question_type=QuestionType.SELECT_MISSING_WORD,
                prompt_text="Q",
                submission_audio_ref=AUDIO_URL,
                answer_key=["B"],
            )
        )
        assert isinstance(result.error, InvalidSubmissionError)
        assert provider.calls == []


class TestConcurrency:
    async def test_requests_do_not_share_state(self) -> None:
        provider = MockAIProvider(['{"overallScore": 50}'])
        orch = _orchestrator(provider)
        results = await asyncio.gather(
            *(
                orch.score_submission(QuestionType.WRITE_ESSAY, f"Topic {i}", text=f"essay {i}")
                for i in range(5)
            )
        )
        assert all(r.ok for r in results)
        assert [r.request.prompt_text for r in results] == [f"Topic {i}" for i in range(5)]
        assert all(r.steps == 1 for r in results)


class TestClose:
    async def test_injected_fetcher_not_closed(self) -> None:
        fetcher = MockAudioFetcher()
        orch = _orchestrator(MockAIProvider(), fetcher=fetcher)
        await orch.close()
        assert not fetcher.closed
