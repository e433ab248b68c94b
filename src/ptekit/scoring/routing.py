"""Question type to model selection."""

from __future__ import annotations

from enum import StrEnum, unique

from ptekit.scoring.config import ScoringConfig
from ptekit.scoring.models import QuestionType


@unique
class ModelTier(StrEnum):
    STANDARD = "standard"
    ADVANCED = "advanced"


class ModelRouter:
    """Deterministic mapping from question type to model name.

    Explicit ``model_overrides`` win; otherwise types in
    ``advanced_types`` use the advanced model and everything else the
    standard one.
    """

    def __init__(self, config: ScoringConfig | None = None) -> None:
        self._config = config or ScoringConfig()

    def tier_for(self, question_type: QuestionType) -> ModelTier:
        if question_type in self._config.advanced_types:
            return ModelTier.ADVANCED
        return ModelTier.STANDARD

    def select(self, question_type: QuestionType) -> str:
        override = self._config.model_overrides.get(question_type)
        if override:
            return override
        if self.tier_for(question_type) is ModelTier.ADVANCED:
            return self._config.advanced_model
        return self._config.standard_model
