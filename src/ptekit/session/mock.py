"""Mock session transport and bootstrap for testing."""

from __future__ import annotations

import asyncio
import base64
import json
from collections.abc import AsyncIterator
from typing import Any

from pydantic import SecretStr

from ptekit.audio.mock import MockCall
from ptekit.session.bootstrap import SessionBootstrap, SessionCredential
from ptekit.session.transport import SessionTransport, TransportError

# Sentinel strings used as control signals on the inbound queue
_CLOSE = "__CLOSE__"
_FAULT = "__FAULT__"


class MockSessionTransport(SessionTransport):
    """In-memory transport that records outbound frames.

    Tracks every sent message (decoded from JSON) and provides helpers to
    simulate inbound traffic.  With ``auto_ack`` the transport answers
    the ``setup`` envelope with ``{"setupComplete": {}}`` by itself.

    Example:
        transport = MockSessionTransport()
        await connection.connect()
        transport.simulate_tool_call("call-1", "getUserWeakAreas")
        transport.simulate_audio(b"\\x00\\x01" * 240)
        transport.simulate_close()
    """

    def __init__(self, *, auto_ack: bool = True) -> None:
        self.calls: list[MockCall] = []
        self.sent: list[dict[str, Any]] = []
        self.auto_ack = auto_ack
        self.open_error: Exception | None = None
        self.send_error: Exception | None = None
        self.fault_message = "connection reset"
        self._open = False
        self._inbound: asyncio.Queue[str | bytes] = asyncio.Queue()

    @property
    def is_open(self) -> bool:
        return self._open

    def sent_of(self, key: str) -> list[dict[str, Any]]:
        """Payloads of every sent envelope with top-level *key*."""
        return [m[key] for m in self.sent if key in m]

    @property
    def audio_chunks(self) -> list[dict[str, Any]]:
        return [c for m in self.sent_of("realtimeInput") for c in m["mediaChunks"]]

    @property
    def function_responses(self) -> list[dict[str, Any]]:
        return [r for m in self.sent_of("toolResponse") for r in m["functionResponses"]]

    async def open(self, credential: SessionCredential) -> None:
        self.calls.append(MockCall("open", {"api_key": credential.api_key.get_secret_value()}))
        if self.open_error is not None:
            raise self.open_error
        self._inbound = asyncio.Queue()
        self._open = True

    async def send(self, message: str) -> None:
        if not self._open:
            raise TransportError("MockSessionTransport is closed")
        if self.send_error is not None:
            raise self.send_error
        data = json.loads(message)
        self.sent.append(data)
        if self.auto_ack and "setup" in data:
            self.simulate_message({"setupComplete": {}})

    async def messages(self) -> AsyncIterator[str | bytes]:
        inbound = self._inbound
        while True:
            raw = await inbound.get()
            if raw == _CLOSE:
                return
            if raw == _FAULT:
                raise TransportError(self.fault_message)
            yield raw

    async def close(self) -> None:
        self.calls.append(MockCall("close"))
        if self._open:
            self._open = False
            self._inbound.put_nowait(_CLOSE)

    # -- Simulation helpers --

    def simulate_message(self, message: dict[str, Any] | str) -> None:
        raw = message if isinstance(message, str) else json.dumps(message)
        self._inbound.put_nowait(raw)

    def simulate_audio(self, pcm: bytes, *, sample_rate: int = 24000) -> None:
        self.simulate_message(
            {
                "serverContent": {
                    "modelTurn": {
                        "parts": [
                            {
                                "inlineData": {
                                    "data": base64.b64encode(pcm).decode("ascii"),
                                    "mimeType": f"audio/pcm;rate={sample_rate}",
                                }
                            }
                        ]
                    }
                }
            }
        )

    def simulate_text(self, text: str, *, turn_complete: bool = False) -> None:
        self.simulate_message(
            {
                "serverContent": {
                    "modelTurn": {"parts": [{"text": text}]},
                    "turnComplete": turn_complete,
                }
            }
        )

    def simulate_tool_call(self, call_id: str, name: str, args: dict[str, Any] | None = None) -> None:
        self.simulate_message(
            {"toolCall": {"functionCalls": [{"id": call_id, "name": name, "args": args or {}}]}}
        )

    def simulate_close(self) -> None:
        """Clean close from the peer."""
        self._inbound.put_nowait(_CLOSE)

    def simulate_fault(self, message: str | None = None) -> None:
        """Abnormal close from the peer."""
        if message is not None:
            self.fault_message = message
        self._inbound.put_nowait(_FAULT)


class MockSessionBootstrap(SessionBootstrap):
    """Returns a fixed credential, or raises ``error`` when set."""

    def __init__(
        self,
        api_key: str = "test-key",
        config: dict[str, Any] | None = None,
        *,
        error: Exception | None = None,
    ) -> None:
        self.calls: list[MockCall] = []
        self.credential = SessionCredential(api_key=SecretStr(api_key), config=config or {})
        self.error = error

    async def fetch_credential(self) -> SessionCredential:
        self.calls.append(MockCall("fetch_credential"))
        if self.error is not None:
            raise self.error
        return self.credential

