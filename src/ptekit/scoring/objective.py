"""Answer-key scoring for objective question types.

Objective responses have a single right answer, so they are graded by
rule without a model call.  The text submission lists the chosen items
one per line or comma separated; write-from-dictation takes the typed
sentence as-is.  Scores are the fraction earned scaled to 0-90.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Callable

from ptekit.scoring.models import DimensionFeedback, FeedbackReport, QuestionType, ScoringRequest

MAX_SCORE = 90

_ITEM_SPLIT = re.compile(r"[\n,]")
_WORD = re.compile(r"[\w']+")

# earned, possible
Grader = Callable[[list[str], list[str]], tuple[int, int]]


def _norm(item: str) -> str:
    return " ".join(item.split()).casefold()


def parse_items(text: str) -> list[str]:
    return [item.strip() for item in _ITEM_SPLIT.split(text) if item.strip()]


def _single_choice(response: list[str], key: list[str]) -> tuple[int, int]:
    if not response:
        return 0, 1
    return int(_norm(response[0]) == _norm(key[0])), 1


def _multiple_choice(response: list[str], key: list[str]) -> tuple[int, int]:
    # +1 per correct option, -1 per wrong one, never below zero
    wanted = {_norm(k) for k in key}
    chosen = {_norm(r) for r in response}
    earned = len(chosen & wanted) - len(chosen - wanted)
    return max(earned, 0), len(wanted)


def _blanks(response: list[str], key: list[str]) -> tuple[int, int]:
    earned = sum(
        1 for given, expected in zip(response, key, strict=False) if _norm(given) == _norm(expected)
    )
    return earned, len(key)


def _reorder(response: list[str], key: list[str]) -> tuple[int, int]:
    # one point per adjacent pair that is also adjacent in the key
    if len(key) < 2:
        return _blanks(response, key)
    key_pairs = {(_norm(a), _norm(b)) for a, b in zip(key, key[1:], strict=False)}
    got = {(_norm(a), _norm(b)) for a, b in zip(response, response[1:], strict=False)}
    return len(got & key_pairs), len(key_pairs)


def _dictation(response: list[str], key: list[str]) -> tuple[int, int]:
    expected = Counter(w.casefold() for w in _WORD.findall(" ".join(key)))
    given = Counter(w.casefold() for w in _WORD.findall(" ".join(response)))
    return sum((expected & given).values()), sum(expected.values())


_GRADERS: dict[QuestionType, Grader] = {
    QuestionType.READING_MULTIPLE_CHOICE_SINGLE: _single_choice,
    QuestionType.LISTENING_MULTIPLE_CHOICE_SINGLE: _single_choice,
    QuestionType.HIGHLIGHT_CORRECT_SUMMARY: _single_choice,
    QuestionType.SELECT_MISSING_WORD: _single_choice,
    QuestionType.READING_MULTIPLE_CHOICE_MULTIPLE: _multiple_choice,
    QuestionType.LISTENING_MULTIPLE_CHOICE_MULTIPLE: _multiple_choice,
    QuestionType.HIGHLIGHT_INCORRECT_WORDS: _multiple_choice,
    QuestionType.READING_FILL_IN_THE_BLANKS: _blanks,
    QuestionType.READING_WRITING_FILL_IN_THE_BLANKS: _blanks,
    QuestionType.LISTENING_FILL_IN_THE_BLANKS: _blanks,
    QuestionType.REORDER_PARAGRAPHS: _reorder,
    QuestionType.WRITE_FROM_DICTATION: _dictation,
}


def supports(question_type: QuestionType) -> bool:
    return question_type in _GRADERS


def score_objective(request: ScoringRequest) -> FeedbackReport:
    """Grade *request* against its ``answer_key``.

    Raises:
        ValueError: If the type is not objective, the answer key is
            missing, or the submission is not text.
    """
    grader = _GRADERS.get(request.question_type)
    if grader is None:
        raise ValueError(f"{request.question_type} is not an objective question type")
    if not request.answer_key:
        raise ValueError("Objective scoring needs an answer key")
    if request.submission_text is None:
        raise ValueError("Objective responses must be submitted as text")

    if request.question_type is QuestionType.WRITE_FROM_DICTATION:
        response = [request.submission_text]
    else:
        response = parse_items(request.submission_text)

    earned, possible = grader(response, request.answer_key)
    ratio = earned / possible if possible else 0.0
    score = round(MAX_SCORE * ratio)

    if earned == possible:
        feedback = "Correct!"
    elif earned == 0:
        feedback = "Incorrect."
    else:
        feedback = f"{earned} out of {possible} correct."

    suggestions: list[str] = []
    strengths: list[str] = []
    areas: list[str] = []
    if earned == possible:
        strengths.append("All answers match the answer key.")
    else:
        suggestions.append("Review the question carefully and compare with the correct answer.")
        areas.append(f"Accuracy on {request.question_type.replace('_', ' ')} questions")

    return FeedbackReport(
        overall_score=score,
        accuracy=DimensionFeedback(score=score, feedback=feedback),
        suggestions=suggestions,
        strengths=strengths,
        areas_for_improvement=areas,
    )
