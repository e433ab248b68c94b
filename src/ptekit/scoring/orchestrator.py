"""ScoringOrchestrator: bounded multi-step grading of a finished submission."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from ptekit.providers.ai.base import (
    AIAudioPart,
    AIContext,
    AIMessage,
    AIPart,
    AIProvider,
    AITextPart,
    AITool,
    AIToolCallPart,
    AIToolResultPart,
    ProviderError,
)
from ptekit.scoring import objective
from ptekit.scoring.config import ScoringConfig
from ptekit.scoring.criteria import CriteriaStore
from ptekit.scoring.fetch import AudioFetcher, AudioFetchError, FetchedAudio, HTTPAudioFetcher
from ptekit.scoring.models import FeedbackReport, QuestionType, ScoringRequest
from ptekit.scoring.routing import ModelRouter
from ptekit.scoring.transcription import TranscriptionError, TranscriptionPoller
from ptekit.tools.base import ToolCall, ToolDefinition
from ptekit.tools.dispatcher import ToolDispatcher

logger = logging.getLogger("ptekit.scoring.orchestrator")

RETRIEVE_SCORING_CRITERIA = ToolDefinition(
    name="retrieveScoringCriteria",
    description="Retrieve scoring criteria and rubrics for a specific PTE question type.",
    parameters={
        "type": "OBJECT",
        "properties": {
            "questionType": {
                "type": "STRING",
                "description": "The type of PTE question (e.g., read_aloud, write_essay).",
            }
        },
        "required": ["questionType"],
    },
)

SYSTEM_PROMPT = """\
You are an expert PTE Academic examiner. Your goal is to provide a detailed, \
accurate score and feedback for the user's response.

Question type: "{question_type}".

Scoring criteria:
{criteria}

Follow this process:
1. Use the scoring criteria above. Call 'retrieveScoringCriteria' only if you \
need the rubric of another question type.
2. If audio is provided:
   - Listen to the audio (provided natively).
   - Compare your listening understanding with the verified transcript so that \
every word counts for content scoring.
3. Evaluate the response against the criteria (Content, Fluency, Pronunciation, etc.).
4. Reply with a detailed JSON report. overallScore uses the 0-90 PTE scale."""

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class ScoringError(Exception):
    """A scoring request failed.

    The original request is kept so the caller can offer a retry without
    asking the user to submit again.

    Attributes:
        request: The submission that failed to score.
        retryable: Whether running the same request again may succeed.
    """

    def __init__(self, message: str, *, request: ScoringRequest, retryable: bool = False) -> None:
        super().__init__(message)
        self.request = request
        self.retryable = retryable


class InvalidSubmissionError(ScoringError):
    """The request is malformed (e.g. both text and audio supplied)."""


class MalformedOutputError(ScoringError):
    """The model's answer is not a valid feedback report."""

    def __init__(
        self,
        message: str,
        *,
        request: ScoringRequest,
        raw_output: str | None = None,
    ) -> None:
        super().__init__(message, request=request, retryable=True)
        self.raw_output = raw_output


class UpstreamFailureError(ScoringError):
    """The model call, or every source of evidence, failed."""


class StepLimitExceededError(ScoringError):
    """The model kept requesting tools past ``max_steps``."""


@dataclass
class ScoringResult:
    """Outcome of one :meth:`ScoringOrchestrator.score` call.

    Exactly one of ``report`` / ``error`` is set.
    """

    request: ScoringRequest
    report: FeedbackReport | None = None
    error: ScoringError | None = None
    model: str | None = None
    steps: int = 0
    transcript: str | None = None
    audio_attached: bool = False
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> FeedbackReport:
        """Return the report, or raise the scoring error."""
        if self.error is not None:
            raise self.error
        assert self.report is not None
        return self.report


@dataclass
class _Evidence:
    parts: list[AIPart]
    transcript: str | None = None
    audio_attached: bool = False


class ScoringOrchestrator:
    """Grades submissions with a model, a rubric and a verified transcript.

    Per request: resolve the rubric, gather evidence (inline audio plus an
    independent transcript, or the text answer), then run up to
    ``max_steps`` model calls.  Each call may request tools through the
    :class:`ToolDispatcher`; the last allowed call offers no tools so the
    model has to answer.  The answer is validated against
    :class:`FeedbackReport`.

    Objective question types with an answer key are graded by rule and
    never reach the model.

    ``score()`` returns failures as :class:`ScoringResult` errors.  The
    orchestrator holds no per-request state, so one instance can serve
    concurrent requests.
    """

    def __init__(
        self,
        provider: AIProvider,
        *,
        transcriber: TranscriptionPoller | None = None,
        fetcher: AudioFetcher | None = None,
        criteria: CriteriaStore | None = None,
        config: ScoringConfig | None = None,
        router: ModelRouter | None = None,
        tools: ToolDispatcher | None = None,
    ) -> None:
        self._provider = provider
        self._transcriber = transcriber
        self._owns_fetcher = fetcher is None
        self._fetcher = fetcher or HTTPAudioFetcher()
        self._criteria = criteria or CriteriaStore()
        self._config = config or ScoringConfig()
        self._router = router or ModelRouter(self._config)
        self._tools = tools or self._default_tools()

    def _default_tools(self) -> ToolDispatcher:
        if not self._config.enable_criteria_tool:
            return ToolDispatcher()
        return ToolDispatcher(
            [RETRIEVE_SCORING_CRITERIA],
            handlers={RETRIEVE_SCORING_CRITERIA.name: self._retrieve_criteria},
        )

    def _retrieve_criteria(self, args: dict[str, Any]) -> dict[str, str]:
        question_type = str(args.get("questionType", ""))
        logger.debug("Model requested criteria for %s", question_type)
        return {"criteria": self._criteria.get(question_type).text}

    @property
    def config(self) -> ScoringConfig:
        return self._config

    async def score_submission(
        self,
        question_type: QuestionType,
        question_content: str,
        *,
        text: str | None = None,
        audio_url: str | None = None,
        answer_key: list[str] | None = None,
    ) -> ScoringResult:
        """Convenience wrapper building the :class:`ScoringRequest`."""
        request = ScoringRequest(
            question_type=question_type,
            prompt_text=question_content,
            submission_text=text,
            submission_audio_ref=audio_url,
            answer_key=answer_key,
        )
        return await self.score(request)

    async def score(self, request: ScoringRequest) -> ScoringResult:
        """Grade *request*.

        Never raises for scoring failures; ``CancelledError`` propagates.
        """
        problem = request.validation_error()
        if problem is not None:
            logger.warning("Rejected %s submission: %s", request.question_type, problem)
            return ScoringResult(
                request=request, error=InvalidSubmissionError(problem, request=request)
            )

        logger.info("Scoring %s submission", request.question_type)
        try:
            result = await self._score(request)
        except ScoringError as exc:
            logger.warning(
                "Scoring %s failed: %s: %s", request.question_type, type(exc).__name__, exc
            )
            return ScoringResult(request=request, error=exc)

        logger.info(
            "Scored %s: %s (model=%s, steps=%d)",
            request.question_type,
            result.report.overall_score if result.report else None,
            result.model,
            result.steps,
        )
        return result

    async def _score(self, request: ScoringRequest) -> ScoringResult:
        if request.answer_key and objective.supports(request.question_type):
            try:
                report = objective.score_objective(request)
            except ValueError as exc:
                raise InvalidSubmissionError(str(exc), request=request) from exc
            return ScoringResult(request=request, report=report)

        rubric = self._criteria.get(request.question_type)
        model = self._router.select(request.question_type)
        evidence = await self._gather_evidence(request)
        system_prompt = SYSTEM_PROMPT.format(
            question_type=request.question_type.value, criteria=rubric.text.strip()
        )
        messages = [AIMessage(role="user", content=evidence.parts)]
        result = ScoringResult(
            request=request,
            model=model,
            transcript=evidence.transcript,
            audio_attached=evidence.audio_attached,
        )
        await self._reason(result, system_prompt, messages)
        return result

    async def _gather_evidence(self, request: ScoringRequest) -> _Evidence:
        parts: list[AIPart] = [AITextPart(text=f"Question Prompt: {request.prompt_text}")]
        if not request.is_audio:
            parts.append(AITextPart(text=f"User Text Response: {request.submission_text}"))
            return _Evidence(parts=parts)

        url = request.submission_audio_ref
        assert url is not None
        audio = await self._fetch_audio(url)
        transcript = await self._transcribe(url)
        if audio is None and transcript is None:
            raise UpstreamFailureError(
                "Audio could not be fetched or transcribed", request=request, retryable=True
            )

        if audio is not None:
            parts.append(AIAudioPart(data=audio.data, mime_type=audio.mime_type))
            parts.append(AITextPart(text="This is the user's audio response."))
        else:
            parts.append(
                AITextPart(
                    text="The audio recording is unavailable; score from the transcript alone."
                )
            )
        if transcript is not None:
            parts.append(
                AITextPart(text=f"Verified transcript of the user's audio response:\n{transcript}")
            )
        return _Evidence(parts=parts, transcript=transcript, audio_attached=audio is not None)

    async def _fetch_audio(self, url: str) -> FetchedAudio | None:
        try:
            return await self._fetcher.fetch(url)
        except AudioFetchError as exc:
            logger.warning("Failed to fetch audio, continuing without it: %s", exc)
            return None

    async def _transcribe(self, url: str) -> str | None:
        if self._transcriber is None:
            return None
        try:
            return await self._transcriber.transcribe(url)
        except TranscriptionError as exc:
            logger.warning("Transcription failed (%s): %s", type(exc).__name__, exc)
            return None

    async def _reason(
        self, result: ScoringResult, system_prompt: str, messages: list[AIMessage]
    ) -> None:
        request = result.request
        ai_tools = [
            AITool(name=d.name, description=d.description, parameters=d.parameters)
            for d in self._tools.definitions
        ]
        schema = FeedbackReport.output_schema()
        max_steps = self._config.max_steps

        for step in range(1, max_steps + 1):
            final = step == max_steps
            context = AIContext(
                messages=messages,
                model=result.model,
                system_prompt=system_prompt,
                temperature=self._config.temperature,
                max_tokens=self._config.max_tokens,
                tools=[] if final else ai_tools,
                response_schema=schema,
            )
            try:
                response = await self._provider.generate(context)
            except ProviderError as exc:
                raise UpstreamFailureError(
                    f"Model call failed: {exc}", request=request, retryable=exc.retryable
                ) from exc
            result.steps = step
            for key, value in response.usage.items():
                result.usage[key] = result.usage.get(key, 0) + value

            if not response.tool_calls:
                result.report = self._parse_report(request, response.content)
                return
            if final:
                break

            messages.append(
                AIMessage(
                    role="assistant",
                    content=[
                        AIToolCallPart(id=c.id, name=c.name, arguments=c.arguments)
                        for c in response.tool_calls
                    ],
                )
            )
            results: list[AIPart] = []
            for call in response.tool_calls:
                answer = await self._tools.handle_call(
                    ToolCall(id=call.id, name=call.name, args=call.arguments)
                )
                results.append(
                    AIToolResultPart(
                        tool_call_id=call.id,
                        name=call.name,
                        result=json.dumps(answer.to_function_response().response, default=str),
                    )
                )
            messages.append(AIMessage(role="tool", content=results))

        raise StepLimitExceededError(
            f"No report after {max_steps} steps", request=request, retryable=True
        )

    def _parse_report(self, request: ScoringRequest, content: str) -> FeedbackReport:
        text = content.strip()
        fenced = _FENCE.match(text)
        if fenced:
            text = fenced.group(1)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedOutputError(
                f"Model output is not JSON: {exc}", request=request, raw_output=content
            ) from exc
        try:
            return FeedbackReport.model_validate(data)
        except ValidationError as exc:
            raise MalformedOutputError(
                f"Model output failed validation: {exc.error_count()} error(s)",
                request=request,
                raw_output=content,
            ) from exc

    async def close(self) -> None:
        if self._owns_fetcher:
            await self._fetcher.close()
