"""Scoring and transcription configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from ptekit.scoring.models import QuestionType

DEFAULT_ADVANCED_TYPES: frozenset[QuestionType] = frozenset(
    {
        QuestionType.READ_ALOUD,
        QuestionType.RE_TELL_LECTURE,
        QuestionType.SUMMARIZE_GROUP_DISCUSSION,
        QuestionType.SUMMARIZE_SPOKEN_TEXT,
        QuestionType.WRITE_ESSAY,
    }
)


class TranscriptionConfig(BaseModel):
    """Polling behaviour for transcription jobs.

    Attributes:
        poll_interval: Seconds between status polls.
        max_duration: Wall-clock ceiling for a whole ``transcribe()`` call.
        max_polls: Optional ceiling on the number of polls.
    """

    poll_interval: float = Field(default=1.0, gt=0.0)
    max_duration: float = Field(default=300.0, gt=0.0)
    max_polls: int | None = Field(default=None, ge=1)


class ScoringConfig(BaseModel):
    """Configuration for :class:`~ptekit.scoring.orchestrator.ScoringOrchestrator`.

    Attributes:
        max_steps: Maximum model calls per request, tool round-trips included.
        standard_model: Model used for short or simple question types.
        advanced_model: Model used for ``advanced_types``.
        advanced_types: Question types that need the larger model.
        model_overrides: Explicit per-type model names; checked first.
        temperature: Sampling temperature for grading calls.
        max_tokens: Output token limit for grading calls.
        enable_criteria_tool: Offer ``retrieveScoringCriteria`` to the model.
    """

    max_steps: int = Field(default=5, ge=1)
    standard_model: str = "gemini-2.5-flash"
    advanced_model: str = "gemini-2.5-pro"
    advanced_types: frozenset[QuestionType] = DEFAULT_ADVANCED_TYPES
    model_overrides: dict[QuestionType, str] = Field(default_factory=dict)
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2048, ge=1)
    enable_criteria_tool: bool = True

    @model_validator(mode="after")
    def _models_named(self) -> ScoringConfig:
        if not self.standard_model or not self.advanced_model:
            raise ValueError("standard_model and advanced_model must be non-empty")
        return self
