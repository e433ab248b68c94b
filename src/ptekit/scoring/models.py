"""Scoring request and feedback report models."""

from __future__ import annotations

from enum import StrEnum, unique
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


@unique
class QuestionType(StrEnum):
    """PTE Academic question types."""

    # Speaking
    READ_ALOUD = "read_aloud"
    REPEAT_SENTENCE = "repeat_sentence"
    DESCRIBE_IMAGE = "describe_image"
    RE_TELL_LECTURE = "re_tell_lecture"
    ANSWER_SHORT_QUESTION = "answer_short_question"
    RESPOND_TO_A_SITUATION = "respond_to_a_situation"
    SUMMARIZE_GROUP_DISCUSSION = "summarize_group_discussion"
    # Writing
    SUMMARIZE_WRITTEN_TEXT = "summarize_written_text"
    WRITE_ESSAY = "write_essay"
    # Reading
    READING_WRITING_FILL_IN_THE_BLANKS = "reading_writing_fill_in_the_blanks"
    READING_FILL_IN_THE_BLANKS = "reading_fill_in_the_blanks"
    READING_MULTIPLE_CHOICE_SINGLE = "reading_multiple_choice_single"
    READING_MULTIPLE_CHOICE_MULTIPLE = "reading_multiple_choice_multiple"
    REORDER_PARAGRAPHS = "reorder_paragraphs"
    # Listening
    SUMMARIZE_SPOKEN_TEXT = "summarize_spoken_text"
    LISTENING_MULTIPLE_CHOICE_SINGLE = "listening_multiple_choice_single"
    LISTENING_MULTIPLE_CHOICE_MULTIPLE = "listening_multiple_choice_multiple"
    LISTENING_FILL_IN_THE_BLANKS = "listening_fill_in_the_blanks"
    HIGHLIGHT_CORRECT_SUMMARY = "highlight_correct_summary"
    SELECT_MISSING_WORD = "select_missing_word"
    HIGHLIGHT_INCORRECT_WORDS = "highlight_incorrect_words"
    WRITE_FROM_DICTATION = "write_from_dictation"

    @property
    def is_subjective(self) -> bool:
        """Whether responses need model grading rather than an answer key."""
        return self in SUBJECTIVE_TYPES


SUBJECTIVE_TYPES: frozenset[QuestionType] = frozenset(
    {
        QuestionType.READ_ALOUD,
        QuestionType.REPEAT_SENTENCE,
        QuestionType.DESCRIBE_IMAGE,
        QuestionType.RE_TELL_LECTURE,
        QuestionType.ANSWER_SHORT_QUESTION,
        QuestionType.RESPOND_TO_A_SITUATION,
        QuestionType.SUMMARIZE_GROUP_DISCUSSION,
        QuestionType.SUMMARIZE_WRITTEN_TEXT,
        QuestionType.WRITE_ESSAY,
        QuestionType.SUMMARIZE_SPOKEN_TEXT,
    }
)


class ScoringRequest(BaseModel):
    """A finished submission to grade.

    Exactly one of ``submission_text`` / ``submission_audio_ref`` must be
    set.  The request is accepted as constructed so that a malformed one
    can be reported back with the submission intact; the orchestrator
    checks :meth:`validation_error` before doing any work.

    ``answer_key`` is only used for objective question types, whose text
    submission lists the chosen items one per line (or comma separated).
    """

    question_type: QuestionType
    prompt_text: str
    submission_text: str | None = None
    submission_audio_ref: str | None = None
    answer_key: list[str] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    def validation_error(self) -> str | None:
        has_text = bool(self.submission_text and self.submission_text.strip())
        has_audio = bool(self.submission_audio_ref)
        if has_text and has_audio:
            return "Submission must be either text or audio, not both"
        if not has_text and not has_audio:
            return "Submission is empty: provide text or an audio reference"
        return None

    @property
    def is_audio(self) -> bool:
        return bool(self.submission_audio_ref)


class _ReportModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DimensionFeedback(_ReportModel):
    """Score and comment for one marking dimension."""

    score: float = Field(ge=0)
    feedback: str


class FeedbackReport(_ReportModel):
    """Schema-validated grading verdict.

    ``overall_score`` is always present and within the 0-90 PTE scale.
    Array fields are never null; a missing or null value becomes ``[]``.
    """

    overall_score: float = Field(ge=0, le=90, description="Overall score from 0-90")
    pronunciation: DimensionFeedback | None = None
    fluency: DimensionFeedback | None = None
    grammar: DimensionFeedback | None = None
    vocabulary: DimensionFeedback | None = None
    content: DimensionFeedback | None = None
    spelling: DimensionFeedback | None = None
    structure: DimensionFeedback | None = None
    accuracy: DimensionFeedback | None = None
    suggestions: list[str] = Field(
        default_factory=list, description="List of actionable suggestions for improvement"
    )
    strengths: list[str] = Field(
        default_factory=list, description="List of strengths identified in the response"
    )
    areas_for_improvement: list[str] = Field(
        default_factory=list, description="List of specific areas to improve"
    )

    @field_validator("suggestions", "strengths", "areas_for_improvement", mode="before")
    @classmethod
    def null_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @classmethod
    def output_schema(cls) -> dict[str, Any]:
        """JSON schema (camelCase) the model's final answer must follow."""
        return cls.model_json_schema(by_alias=True)

    def dimensions(self) -> dict[str, DimensionFeedback]:
        """The per-dimension entries that are present."""
        names = (
            "pronunciation",
            "fluency",
            "grammar",
            "vocabulary",
            "content",
            "spelling",
            "structure",
            "accuracy",
        )
        return {n: d for n in names if (d := getattr(self, n)) is not None}
