"""
Pydantic schemas for test session endpoints.
"""
from pydantic import BaseModel, BeforeValidator, Field
from typing import Annotated, Dict, List, Optional, Union
from datetime import datetime

from examprep.core.validators import normalize_option_key

# A-D, or None for unanswered
OptionAnswer = Annotated[Optional[str], BeforeValidator(normalize_option_key)]


class StartSessionRequest(BaseModel):
    """Schema for starting (or resuming) an attempt."""

    test_id: int = Field(..., ge=1, description="Test to attempt")


class StartSessionResponse(BaseModel):
    """Schema returned by start; ``resuming`` is true for an existing open session."""

    session_id: str = Field(..., description="Opaque session token")
    test_id: int = Field(..., description="Test ID")
    test_name: str = Field(..., description="Test name")
    total_questions: int = Field(..., description="Number of questions in the test")
    duration_minutes: int = Field(..., description="Time allowed for the attempt")
    time_remaining_minutes: float = Field(
        ..., description="Minutes left before the attempt runs out of time"
    )
    resuming: bool = Field(..., description="True if an open session was resumed")
    started_at: datetime = Field(..., description="Session start timestamp")
    resumable_until: datetime = Field(
        ..., description="Last moment at which start resumes this session"
    )


class AnswerItem(BaseModel):
    """One answered (or skipped) question."""

    question_index: int = Field(
        ..., description="Zero-based question index; out-of-range indices are ignored"
    )
    selected_option: OptionAnswer = Field(
        None, description="Selected option key (A-D); empty or null means unanswered"
    )
    time_spent_seconds: Optional[int] = Field(
        None, ge=0, description="Seconds spent on the question, if tracked"
    )


class SubmitSessionRequest(BaseModel):
    """
    Schema for submitting an attempt.

    ``answers`` accepts either a list of AnswerItem objects or a plain
    mapping of question index to option key. Later list entries for the
    same index override earlier ones.
    """

    answers: Union[List[AnswerItem], Dict[int, OptionAnswer]] = Field(
        default_factory=list, description="Submitted answers"
    )
    time_expired: bool = Field(
        False, description="Client-side timer reported that time ran out"
    )

    def answer_map(self) -> Dict[int, Optional[str]]:
        if isinstance(self.answers, dict):
            return dict(self.answers)
        return {item.question_index: item.selected_option for item in self.answers}

    def time_spent_map(self) -> Dict[int, int]:
        if isinstance(self.answers, dict):
            return {}
        return {
            item.question_index: item.time_spent_seconds
            for item in self.answers
            if item.time_spent_seconds is not None
        }


class ScoreBreakdown(BaseModel):
    correct: int
    wrong: int
    unanswered: int
    total: int


class ScoringWeightsSchema(BaseModel):
    correct: float
    wrong: float
    unanswered: float


class SubmitSessionResponse(BaseModel):
    """Schema for a scored submission."""

    session_id: str = Field(..., description="Session token")
    record_id: int = Field(..., description="ID of the created performance record")
    weighted_score: float = Field(
        ..., description="Sum of per-question points; negative marking may push it below zero"
    )
    percentage: float = Field(..., description="Correct answers as a percentage (0-100)")
    breakdown: ScoreBreakdown
    time_taken_minutes: float
    time_allotted_minutes: int
    time_expired: bool
    grade: str
    efficiency: str
    scoring_weights: ScoringWeightsSchema
    message: str


class EndSessionResponse(BaseModel):
    """Schema for ending an attempt without submitting."""

    session_id: str
    status: str
    message: str


class SessionStatusResponse(BaseModel):
    """Derived timing view of a session."""

    session_id: str
    test_id: int
    status: str = Field(
        ..., description="in_progress, submitted, abandoned or expired"
    )
    started_at: datetime
    duration_minutes: int
    time_elapsed_minutes: float
    time_remaining_minutes: float
    time_expired: bool
    completed: bool
