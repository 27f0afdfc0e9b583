"""
StudyMap — Response Envelopes
==============================
Every response from /api/v1/process is wrapped in APIResponse or ErrorResponse.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from studymap.schemas.mindmap import MindMap, Position
from studymap.schemas.study import Flashcard, QuizQuestion, StudySummary


class ProcessingMeta(BaseModel):
    """Metadata about the processing run."""
    processing_time: str = Field(..., description="e.g. '12.4s'")
    file_name: str
    total_pages: int


class ResponseData(BaseModel):
    """Top-level data payload containing the study artifacts."""
    title: str
    summary: Optional[StudySummary] = None
    mind_map: Optional[MindMap] = None
    positions: Dict[str, Position] = {}
    flashcards: Optional[List[Flashcard]] = None
    quiz: Optional[List[QuizQuestion]] = None


class APIResponse(BaseModel):
    """Standard success envelope."""
    status: str = "success"
    meta: ProcessingMeta
    data: ResponseData
    notices: List[str] = []


class ErrorResponse(BaseModel):
    """Standard error envelope."""
    status: str = "error"
    message: str
    detail: Optional[str] = None
