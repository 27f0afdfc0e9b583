from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from studymap.schemas.mindmap import MindMap


class Difficulty(str, Enum):
    easy = "easy"
    medium = "medium"
    hard = "hard"


class ReadingLevel(str, Enum):
    beginner = "beginner"
    intermediate = "intermediate"
    advanced = "advanced"


# ── Summary ──────────────────────────────────────────────────────────────────

class StudySummary(BaseModel):
    """Prose summary with key points and main concepts."""
    summary: str
    key_points: List[str] = []
    concepts: List[str] = []
    difficulty: ReadingLevel = ReadingLevel.intermediate


# ── Flashcards ───────────────────────────────────────────────────────────────

class Flashcard(BaseModel):
    """A single question/answer card."""
    id: str
    front: str
    back: str
    difficulty: Difficulty = Difficulty.medium
    category: str = "General"


# ── Quiz ─────────────────────────────────────────────────────────────────────

class QuizQuestion(BaseModel):
    """A multiple-choice question with exactly 4 options."""
    id: str
    question: str
    options: List[str] = Field(..., min_length=4, max_length=4)
    correct_answer: int = Field(..., ge=0, le=3, description="Index of the correct option")
    explanation: str = ""
    difficulty: Difficulty = Difficulty.medium


# ── Pipeline result ──────────────────────────────────────────────────────────

class StudyArtifacts(BaseModel):
    """
    Everything derived from one document. Any artifact may be missing if its
    generation crashed; ``notices`` carries non-blocking user messages.
    """
    summary: Optional[StudySummary] = None
    mind_map: Optional[MindMap] = None
    flashcards: Optional[List[Flashcard]] = None
    quiz: Optional[List[QuizQuestion]] = None
    notices: List[str] = []
