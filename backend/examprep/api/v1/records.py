"""
Performance record endpoints: history, detail, incorrect answers, feedback.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from examprep.core.auth import get_current_identity
from examprep.core.identity import SubjectIdentity
from examprep.core.performance import (
    DEFAULT_HISTORY_PAGE_SIZE,
    MAX_HISTORY_PAGE_SIZE,
    attach_feedback,
    get_record_for_subject,
    incorrect_answers,
    list_records_for_subject,
)
from examprep.models import get_db
from examprep.schemas.records import (
    FeedbackRequest,
    FeedbackResponse,
    IncorrectAnswersResponse,
    PaginatedRecordsResponse,
    PerformanceRecordResponse,
    PerformanceRecordSummary,
)

router = APIRouter()


@router.get("", response_model=PaginatedRecordsResponse)
def list_records(
    limit: int = Query(
        default=DEFAULT_HISTORY_PAGE_SIZE,
        ge=1,
        le=MAX_HISTORY_PAGE_SIZE,
        description="Number of records to return",
    ),
    offset: int = Query(default=0, ge=0, description="Number of records to skip"),
    identity: SubjectIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """The caller's performance records, most recent first."""
    records, total = list_records_for_subject(db, identity, limit=limit, offset=offset)
    return PaginatedRecordsResponse(
        items=[PerformanceRecordSummary.model_validate(r) for r in records],
        total_count=total,
        limit=limit,
        offset=offset,
        has_more=offset + len(records) < total,
    )


@router.get("/{record_id}", response_model=PerformanceRecordResponse)
def get_record(
    record_id: int,
    identity: SubjectIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Full record with per-question details and derived analytics."""
    record = get_record_for_subject(db, record_id, identity)
    return PerformanceRecordResponse.model_validate(record)


@router.get("/{record_id}/incorrect-answers", response_model=IncorrectAnswersResponse)
def get_incorrect_answers(
    record_id: int,
    identity: SubjectIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Questions answered wrongly, with the correct option and explanation."""
    record = get_record_for_subject(db, record_id, identity)
    answers = incorrect_answers(record)
    return IncorrectAnswersResponse(
        record_id=record.id, count=len(answers), answers=answers
    )


@router.post("/{record_id}/feedback", response_model=FeedbackResponse)
def submit_feedback(
    record_id: int,
    feedback: FeedbackRequest,
    identity: SubjectIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Attach (or replace) the caller's review of an attempt."""
    record = get_record_for_subject(db, record_id, identity)
    record = attach_feedback(
        db,
        record,
        difficulty=feedback.difficulty,
        quality=feedback.quality,
        comments=feedback.comments,
    )
    return FeedbackResponse(
        record_id=record.id,
        review=record.review,
        message="Thank you for your feedback.",
    )
