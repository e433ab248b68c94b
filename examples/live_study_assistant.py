"""ptekit - Live study assistant with Gemini using local mic/speakers.

Talk to the PTE study assistant through your system microphone; the
model's audio plays through your speakers.  Tool calls (study stats,
practice search, goals, weak areas) go to your app's tool endpoint.

Requirements:
    pip install ptekit[local-audio]

Run with:
    PTE_APP_URL=http://localhost:3000 uv run python examples/live_study_assistant.py

Environment variables:
    PTE_APP_URL         (required) Base URL of the app serving
                        /api/gemini/session and /api/gemini/tools
    PTE_APP_TOKEN       Bearer token for the tool endpoint
    MUTE_AFTER          Seconds after which the mic is muted (default: off)

Press Ctrl+C to stop.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal

from ptekit import (
    STUDY_ASSISTANT_TOOLS,
    HTTPSessionBootstrap,
    HTTPToolBackend,
    HTTPToolBackendConfig,
    SessionConfig,
    SessionConnection,
    ToolDispatcher,
    WebSocketSessionTransport,
)
from ptekit.audio.local import LocalAudioSink, LocalAudioSource
from ptekit.session.events import SessionErrorEvent, SessionStateEvent, TurnEvent

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger("live_study_assistant")


async def print_events(conn: SessionConnection) -> None:
    async for event in conn.events():
        if isinstance(event, TurnEvent):
            turn = event.turn
            if turn.text:
                print(f"[{turn.role}] {turn.text}")
            elif turn.tool_call:
                print(f"[{turn.role}] calling {turn.tool_call.name}...")
            elif turn.tool_response:
                print(f"[{turn.role}] {turn.tool_response.name} done.")
        elif isinstance(event, SessionStateEvent):
            logger.info("State: %s -> %s", event.previous, event.state)
        elif isinstance(event, SessionErrorEvent):
            logger.error("Session error [%s]: %s", event.code, event.message)


async def main() -> None:
    app_url = os.environ.get("PTE_APP_URL")
    if not app_url:
        print("Set PTE_APP_URL to run this example.")
        print("  PTE_APP_URL=http://localhost:3000 uv run python examples/live_study_assistant.py")
        return
    app_url = app_url.rstrip("/")

    config = SessionConfig()
    backend = HTTPToolBackend(
        HTTPToolBackendConfig(
            url=f"{app_url}/api/gemini/tools",
            token=os.environ.get("PTE_APP_TOKEN"),
        )
    )
    bootstrap = HTTPSessionBootstrap(f"{app_url}/api/gemini/session")

    conn = SessionConnection(
        bootstrap=bootstrap,
        transport=WebSocketSessionTransport(),
        source=LocalAudioSource(sample_rate=config.wire_input_rate),
        sink=LocalAudioSink(),
        dispatcher=ToolDispatcher(STUDY_ASSISTANT_TOOLS, backend=backend),
        config=config,
    )

    session = await conn.connect()
    logger.info("Session %s active, speak into your microphone!", session.id)
    printer = asyncio.create_task(print_events(conn))

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    mute_after = os.environ.get("MUTE_AFTER")
    if mute_after:
        loop.call_later(float(mute_after), conn.set_muted, True)

    await stop.wait()

    logger.info("Stopping...")
    await conn.disconnect()
    printer.cancel()
    await backend.close()
    await bootstrap.close()
    logger.info("Done.")


if __name__ == "__main__":
    asyncio.run(main())
