"""ptekit - Live study-assistant sessions and submission scoring for PTE practice."""

from ptekit._version import __version__
from ptekit.audio import (
    AudioCodec,
    AudioDeviceError,
    AudioFrame,
    AudioSink,
    AudioSource,
    CaptureStream,
    DeviceBusyError,
    PlaybackQueue,
)
from ptekit.protocol import ProtocolError
from ptekit.providers.ai.base import AIContext, AIProvider, AIResponse, ProviderError
from ptekit.scoring import (
    CriteriaStore,
    FeedbackReport,
    ModelRouter,
    QuestionType,
    ScoringConfig,
    ScoringError,
    ScoringOrchestrator,
    ScoringRequest,
    ScoringResult,
    TranscriptionConfig,
    TranscriptionError,
    TranscriptionPoller,
)
from ptekit.session import (
    ConnectError,
    HTTPSessionBootstrap,
    SessionConfig,
    SessionConnection,
    SessionState,
    TransportFault,
    WebSocketSessionTransport,
)
from ptekit.tools import (
    STUDY_ASSISTANT_TOOLS,
    HTTPToolBackend,
    HTTPToolBackendConfig,
    ToolDispatcher,
    ToolError,
)

__all__ = [
    "__version__",
    # Session
    "ConnectError",
    "HTTPSessionBootstrap",
    "SessionConfig",
    "SessionConnection",
    "SessionState",
    "TransportFault",
    "WebSocketSessionTransport",
    "ProtocolError",
    # Audio
    "AudioCodec",
    "AudioDeviceError",
    "AudioFrame",
    "AudioSink",
    "AudioSource",
    "CaptureStream",
    "DeviceBusyError",
    "PlaybackQueue",
    # Tools
    "STUDY_ASSISTANT_TOOLS",
    "HTTPToolBackend",
    "HTTPToolBackendConfig",
    "ToolDispatcher",
    "ToolError",
    # Scoring
    "CriteriaStore",
    "FeedbackReport",
    "ModelRouter",
    "QuestionType",
    "ScoringConfig",
    "ScoringError",
    "ScoringOrchestrator",
    "ScoringRequest",
    "ScoringResult",
    "TranscriptionConfig",
    "TranscriptionError",
    "TranscriptionPoller",
    # Providers
    "AIContext",
    "AIProvider",
    "AIResponse",
    "ProviderError",
]
