"""Rubric documents used to grade each question type."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from ptekit.scoring.models import QuestionType

logger = logging.getLogger("ptekit.scoring.criteria")

DEFAULT_KEY = "default"

BUILTIN_CRITERIA: dict[str, str] = {
    QuestionType.READ_ALOUD: """\
**Read Aloud Scoring Criteria:**
- **Content (5 points):** Does the speaker include all words from the text? Omissions or insertions differ.
- **Oral Fluency (5 points):** Rhythm, phrasing, and stress. No hesitations or repetitions.
- **Pronunciation (5 points):** Intelligibility and clarity. Vowels and consonants are produced correctly.
""",
    QuestionType.REPEAT_SENTENCE: """\
**Repeat Sentence Scoring Criteria:**
- **Content (3 points):** All words in sequence = 3. >50% words = 2. <50% = 1.
- **Oral Fluency (5 points):** Smooth delivery.
- **Pronunciation (5 points):** Clear and understandable.
""",
    QuestionType.WRITE_ESSAY: """\
**Write Essay Scoring Criteria:**
- **Content (3 points):** Addresses the prompt fully with relevant, developed ideas.
- **Form (2 points):** Between 200 and 300 words.
- **Development, Structure and Coherence (2 points):** Logical organisation with clear paragraphs.
- **Grammar (2 points):** Correct, varied sentence structures.
- **Vocabulary (2 points):** Precise and appropriate word choice.
- **Spelling (2 points):** Consistent spelling, no errors.
""",
    QuestionType.SUMMARIZE_WRITTEN_TEXT: """\
**Summarize Written Text Scoring Criteria:**
- **Content (2 points):** Captures the main points of the passage.
- **Form (1 point):** One single sentence of 5 to 75 words.
- **Grammar (2 points):** Correct grammatical structure.
- **Vocabulary (2 points):** Appropriate word choice.
""",
    DEFAULT_KEY: """\
**General Scoring Criteria:**
- Accuracy: Correctness of the answer.
- Fluency: Smoothness of delivery (if speaking).
- Grammar: Correct grammatical structures (if writing/speaking).
""",
}


@dataclass(frozen=True, slots=True)
class CriteriaDocument:
    """Rubric text resolved for a question type."""

    key: str
    text: str
    is_default: bool = False


class CriteriaStore:
    """Read-only lookup of rubric text by question type.

    Unknown types resolve to the generic default rubric rather than
    failing.  The store is never mutated after construction, so one
    instance can be shared by concurrent scoring requests.
    """

    def __init__(
        self,
        documents: Mapping[str, str] | None = None,
        *,
        include_builtin: bool = True,
    ) -> None:
        merged: dict[str, str] = {}
        if include_builtin:
            merged.update({str(k): v for k, v in BUILTIN_CRITERIA.items()})
        if documents:
            merged.update({str(k): v for k, v in documents.items()})
        if DEFAULT_KEY not in merged:
            raise ValueError("Criteria documents must include a 'default' rubric")
        self._documents: Mapping[str, str] = merged

    @property
    def keys(self) -> frozenset[str]:
        return frozenset(self._documents)

    def get(self, question_type: QuestionType | str) -> CriteriaDocument:
        key = str(question_type).strip().lower()
        text = self._documents.get(key)
        if text is not None:
            return CriteriaDocument(key=key, text=text)
        logger.debug("No rubric for %s, using default", key)
        return CriteriaDocument(
            key=DEFAULT_KEY, text=self._documents[DEFAULT_KEY], is_default=True
        )
