"""Tool declaration and dispatch for live sessions and scoring."""

from ptekit.tools.base import (
    ToolBackend,
    ToolCall,
    ToolDefinition,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolResponse,
    ToolTimeoutError,
)
from ptekit.tools.catalogue import STUDY_ASSISTANT_TOOLS
from ptekit.tools.dispatcher import ToolDispatcher, ToolHandler
from ptekit.tools.http import HTTPToolBackend, HTTPToolBackendConfig
from ptekit.tools.mock import MockToolBackend

__all__ = [
    "STUDY_ASSISTANT_TOOLS",
    "HTTPToolBackend",
    "HTTPToolBackendConfig",
    "MockToolBackend",
    "ToolBackend",
    "ToolCall",
    "ToolDefinition",
    "ToolDispatcher",
    "ToolError",
    "ToolExecutionError",
    "ToolHandler",
    "ToolNotFoundError",
    "ToolResponse",
    "ToolTimeoutError",
]
