"""AssemblyAI transcription provider."""

from ptekit.providers.assemblyai.config import AssemblyAIConfig
from ptekit.providers.assemblyai.transcription import AssemblyAITranscriptionBackend

__all__ = ["AssemblyAIConfig", "AssemblyAITranscriptionBackend"]
