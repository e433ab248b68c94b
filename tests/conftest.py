"""Shared test fixtures and helpers."""

from __future__ import annotations

import asyncio
import struct
from collections.abc import Callable, Coroutine
from typing import Any

import pytest

from ptekit.audio.frame import AudioFrame
from ptekit.audio.mock import MockAudioSink, MockAudioSource
from ptekit.session.config import SessionConfig
from ptekit.session.mock import MockSessionBootstrap, MockSessionTransport
from ptekit.tools.catalogue import STUDY_ASSISTANT_TOOLS
from ptekit.tools.dispatcher import ToolDispatcher
from ptekit.tools.mock import MockToolBackend


@pytest.fixture
def advance() -> Callable[[int], Coroutine[Any, Any, None]]:
    """Yield control to let pending tasks run without real delay.

        await advance()       # 5 yields (default)
        await advance(20)     # 20 yields for heavier workloads
    """

    async def _advance(n: int = 5) -> None:
        for _ in range(n):
            await asyncio.sleep(0)

    return _advance


def pcm(*samples: int) -> bytes:
    """Pack int16 samples as little-endian PCM."""
    return struct.pack(f"<{len(samples)}h", *samples)


def make_frame(n: int = 160, value: int = 100, sample_rate: int = 16000) -> AudioFrame:
    return AudioFrame(data=pcm(*([value] * n)), sample_rate=sample_rate)


@pytest.fixture
def source() -> MockAudioSource:
    return MockAudioSource()


@pytest.fixture
def sink() -> MockAudioSink:
    return MockAudioSink()


@pytest.fixture
def transport() -> MockSessionTransport:
    return MockSessionTransport()


@pytest.fixture
def bootstrap() -> MockSessionBootstrap:
    return MockSessionBootstrap()


@pytest.fixture
def tool_backend() -> MockToolBackend:
    return MockToolBackend({"getUserStudyStats": {"attempts": 12, "averageScore": 61}})


@pytest.fixture
def dispatcher(tool_backend: MockToolBackend) -> ToolDispatcher:
    return ToolDispatcher(STUDY_ASSISTANT_TOOLS, backend=tool_backend)


@pytest.fixture
def session_config() -> SessionConfig:
    return SessionConfig(handshake_timeout=1.0)
