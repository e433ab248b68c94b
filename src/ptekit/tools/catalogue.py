"""Tool catalogue exposed to the live study assistant."""

from __future__ import annotations

from ptekit.tools.base import ToolDefinition

GET_USER_STUDY_STATS = ToolDefinition(
    name="getUserStudyStats",
    description="Get the user's overall study statistics, profile, and recent test attempts.",
    parameters={"type": "OBJECT", "properties": {}},
)

SEARCH_PRACTICE_QUESTIONS = ToolDefinition(
    name="searchPracticeQuestions",
    description="Search for PTE practice questions by section, type, or keywords.",
    parameters={
        "type": "OBJECT",
        "properties": {
            "section": {
                "type": "STRING",
                "description": "Section: speaking, writing, reading, listening",
            },
            "type": {
                "type": "STRING",
                "description": "Question type code (e.g. s_read_aloud)",
            },
            "query": {
                "type": "STRING",
                "description": "Keywords to search in question text",
            },
        },
    },
)

UPDATE_STUDY_GOALS = ToolDefinition(
    name="updateStudyGoals",
    description="Update the user's target score or study goals.",
    parameters={
        "type": "OBJECT",
        "properties": {
            "targetScore": {"type": "NUMBER"},
            "studyGoal": {"type": "STRING"},
            "examDate": {"type": "STRING", "description": "ISO date string"},
        },
    },
)

GET_USER_WEAK_AREAS = ToolDefinition(
    name="getUserWeakAreas",
    description="Analyze recent test performance to identify weak areas.",
    parameters={"type": "OBJECT", "properties": {}},
)

STUDY_ASSISTANT_TOOLS: list[ToolDefinition] = [
    GET_USER_STUDY_STATS,
    SEARCH_PRACTICE_QUESTIONS,
    UPDATE_STUDY_GOALS,
    GET_USER_WEAK_AREAS,
]
