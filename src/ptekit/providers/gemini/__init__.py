"""Google Gemini provider."""

from ptekit.providers.gemini.ai import GeminiAIProvider
from ptekit.providers.gemini.config import GeminiConfig

__all__ = ["GeminiAIProvider", "GeminiConfig"]
