"""ptekit - Score a PTE practice submission.

Grades one text answer and one recorded answer with Gemini.  Recorded
answers are fetched and sent to the model inline, alongside an
independent AssemblyAI transcript.  Objective questions with an answer
key are graded locally without a model call.

Requirements:
    pip install ptekit[gemini]

Run with:
    GOOGLE_API_KEY=... ASSEMBLYAI_API_KEY=... uv run python examples/score_submission.py

Environment variables:
    GOOGLE_API_KEY      (required) Google API key
    ASSEMBLYAI_API_KEY  AssemblyAI key (audio is scored without a transcript if unset)
    AUDIO_URL           Public URL of a recorded Read Aloud answer
"""

from __future__ import annotations

import asyncio
import logging
import os

from ptekit.providers.assemblyai import AssemblyAIConfig, AssemblyAITranscriptionBackend
from ptekit.providers.gemini import GeminiAIProvider, GeminiConfig
from ptekit.scoring import (
    QuestionType,
    ScoringOrchestrator,
    ScoringResult,
    TranscriptionConfig,
    TranscriptionPoller,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger("score_submission")


def show(title: str, result: ScoringResult) -> None:
    print(f"\n=== {title} ===")
    if not result.ok:
        assert result.error is not None
        retry = " (retryable)" if result.error.retryable else ""
        print(f"Failed: {type(result.error).__name__}: {result.error}{retry}")
        return
    report = result.unwrap()
    print(f"Overall: {report.overall_score}/90  model={result.model} steps={result.steps}")
    for name, dim in report.dimensions().items():
        print(f"  {name}: {dim.score} - {dim.feedback}")
    for suggestion in report.suggestions:
        print(f"  * {suggestion}")


async def main() -> None:
    api_key = os.environ.get("GOOGLE_API_KEY")
    if not api_key:
        print("Set GOOGLE_API_KEY to run this example.")
        return

    transcriber = None
    if os.environ.get("ASSEMBLYAI_API_KEY"):
        backend = AssemblyAITranscriptionBackend(
            AssemblyAIConfig(api_key=os.environ["ASSEMBLYAI_API_KEY"])
        )
        transcriber = TranscriptionPoller(backend, TranscriptionConfig(max_duration=120.0))

    orchestrator = ScoringOrchestrator(
        GeminiAIProvider(GeminiConfig(api_key=api_key)),
        transcriber=transcriber,
    )

    # --- Objective: graded by answer key ---
    result = await orchestrator.score_submission(
        QuestionType.REORDER_PARAGRAPHS,
        "Put the paragraphs in order.",
        text="B\nA\nC\nD",
        answer_key=["B", "A", "D", "C"],
    )
    show("Reorder Paragraphs", result)

    # --- Subjective text ---
    result = await orchestrator.score_submission(
        QuestionType.SUMMARIZE_WRITTEN_TEXT,
        "Cities are planting trees to cool streets, clean air and lift mood, "
        "but upkeep costs and water use make some councils hesitate.",
        text="Urban tree planting cools cities and improves air and wellbeing, "
        "although maintenance and water costs worry some councils.",
    )
    show("Summarize Written Text", result)

    # --- Subjective audio ---
    audio_url = os.environ.get("AUDIO_URL")
    if audio_url:
        result = await orchestrator.score_submission(
            QuestionType.READ_ALOUD,
            "The library will be closed on Monday for scheduled maintenance.",
            audio_url=audio_url,
        )
        show("Read Aloud", result)
        if result.transcript is not None:
            print(f"  transcript: {result.transcript}")

    await orchestrator.close()
    if transcriber is not None:
        await transcriber.backend.close()


if __name__ == "__main__":
    asyncio.run(main())
