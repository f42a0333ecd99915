"""
Pydantic schemas for performance record endpoints.
"""
from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime

from examprep.core.validators import StringSanitizer
from examprep.models import SubmissionType

DifficultyRating = Literal["Too Easy", "Easy", "Just Right", "Hard", "Too Hard"]


class AnswerDetail(BaseModel):
    """Per-question outcome stored on the record."""

    question_index: int
    qid: Optional[str] = None
    selected_option: Optional[str] = None
    correct_option: Optional[str] = None
    is_correct: bool
    outcome: str
    points: float
    difficulty: str
    area: str
    time_spent_seconds: Optional[int] = None
    question_text: Optional[str] = None
    explanation: Optional[str] = None


class PerformanceRecordSummary(BaseModel):
    """Compact record used in history listings."""

    id: int
    session_id: str
    test_id: int
    test_name: str
    test_year: int
    test_paper: str
    score: float
    percentage: float
    grade: str
    time_expired: bool
    completed_at: datetime

    class Config:
        """Pydantic configuration."""

        from_attributes = True


class PerformanceRecordResponse(PerformanceRecordSummary):
    """Full performance record."""

    total_questions: int
    correct_count: int
    wrong_count: int
    unanswered_count: int
    time_taken_minutes: float
    time_allotted_minutes: int
    submission_type: SubmissionType
    efficiency: str
    scoring_weights: Dict[str, float]
    answers: List[AnswerDetail]
    analytics: Dict[str, Any]
    performance_summary: Dict[str, float]
    started_at: datetime
    review: Optional[Dict[str, Any]] = None


class PaginatedRecordsResponse(BaseModel):
    items: List[PerformanceRecordSummary]
    total_count: int
    limit: int
    offset: int
    has_more: bool


class IncorrectAnswersResponse(BaseModel):
    record_id: int
    count: int
    answers: List[AnswerDetail]


class FeedbackRequest(BaseModel):
    """Post-hoc review of an attempt."""

    difficulty: DifficultyRating = Field(
        "Just Right", description="How hard the test felt"
    )
    quality: int = Field(5, ge=1, le=5, description="Question quality rating (1-5)")
    comments: Optional[str] = Field(
        None,
        max_length=StringSanitizer.COMMENT_MAX_LENGTH,
        description="Free-text comments",
    )

    @field_validator("comments")
    @classmethod
    def sanitize_comments(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        sanitized = StringSanitizer.sanitize_comment(v)
        return sanitized or None


class FeedbackResponse(BaseModel):
    record_id: int
    review: Dict[str, Any]
    message: str
