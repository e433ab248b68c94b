"""Submission scoring: rubric lookup, transcription and model grading."""

from ptekit.scoring.config import ScoringConfig, TranscriptionConfig
from ptekit.scoring.criteria import CriteriaDocument, CriteriaStore
from ptekit.scoring.fetch import AudioFetcher, AudioFetchError, FetchedAudio, HTTPAudioFetcher
from ptekit.scoring.mock import MockAudioFetcher, MockTranscriptionBackend
from ptekit.scoring.models import (
    DimensionFeedback,
    FeedbackReport,
    QuestionType,
    ScoringRequest,
)
from ptekit.scoring.objective import score_objective
from ptekit.scoring.orchestrator import (
    RETRIEVE_SCORING_CRITERIA,
    InvalidSubmissionError,
    MalformedOutputError,
    ScoringError,
    ScoringOrchestrator,
    ScoringResult,
    StepLimitExceededError,
    UpstreamFailureError,
)
from ptekit.scoring.routing import ModelRouter, ModelTier
from ptekit.scoring.transcription import (
    InvalidTransitionError,
    MissingCredentialsError,
    TranscriptionBackend,
    TranscriptionError,
    TranscriptionJob,
    TranscriptionPoller,
    TranscriptionStatus,
    TranscriptionTimeoutError,
    TranscriptionUpdate,
    TranscriptionUpstreamError,
)

__all__ = [
    "RETRIEVE_SCORING_CRITERIA",
    "AudioFetchError",
    "AudioFetcher",
    "CriteriaDocument",
    "CriteriaStore",
    "DimensionFeedback",
    "FeedbackReport",
    "FetchedAudio",
    "HTTPAudioFetcher",
    "InvalidSubmissionError",
    "InvalidTransitionError",
    "MalformedOutputError",
    "MissingCredentialsError",
    "MockAudioFetcher",
    "MockTranscriptionBackend",
    "ModelRouter",
    "ModelTier",
    "QuestionType",
    "ScoringConfig",
    "ScoringError",
    "ScoringOrchestrator",
    "ScoringRequest",
    "ScoringResult",
    "StepLimitExceededError",
    "TranscriptionBackend",
    "TranscriptionConfig",
    "TranscriptionError",
    "TranscriptionJob",
    "TranscriptionPoller",
    "TranscriptionStatus",
    "TranscriptionTimeoutError",
    "TranscriptionUpdate",
    "TranscriptionUpstreamError",
    "UpstreamFailureError",
    "score_objective",
]
