"""
Test session endpoints: start, submit, end and status.

Thin wrappers over ``examprep.core.session_lifecycle``; domain exceptions
raised there are turned into HTTP responses by the handler registered in
``examprep.main``.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from examprep.core.auth import get_current_identity
from examprep.core.identity import SubjectIdentity
from examprep.core.session_lifecycle import (
    end_session,
    get_session_status,
    grace_deadline,
    start_session,
    submit_session,
)
from examprep.models import get_db
from examprep.schemas.sessions import (
    EndSessionResponse,
    ScoreBreakdown,
    ScoringWeightsSchema,
    SessionStatusResponse,
    StartSessionRequest,
    StartSessionResponse,
    SubmitSessionRequest,
    SubmitSessionResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/start", response_model=StartSessionResponse)
def start(
    request: StartSessionRequest,
    identity: SubjectIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """
    Start an attempt at a test, or resume the caller's open one.

    An open session is resumed while it is within its duration plus the
    grace period; an older one is closed as expired and a fresh session is
    created.

    Raises:
        404 if the test does not exist, 410 if it is inactive, 409 if
        concurrent starts could not be reconciled
    """
    result = start_session(db, request.test_id, identity)
    test_session = result.session
    return StartSessionResponse(
        session_id=test_session.session_id,
        test_id=result.test.id,
        test_name=result.test.name,
        total_questions=result.test.total_questions,
        duration_minutes=result.test.duration_minutes,
        time_remaining_minutes=result.time_remaining_minutes,
        resuming=result.resuming,
        started_at=test_session.started_at,
        resumable_until=grace_deadline(test_session, result.test.duration_minutes),
    )


@router.post("/{session_id}/submit", response_model=SubmitSessionResponse)
def submit(
    session_id: str,
    request: SubmitSessionRequest,
    identity: SubjectIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """
    Score the attempt and create its performance record.

    Submitting after the time limit is accepted; the attempt is flagged
    ``time_expired`` but not penalized.

    Raises:
        404 unknown session, 403 not the owner, 409 already closed,
        422 malformed answers
    """
    result = submit_session(
        db,
        session_id,
        identity,
        answers=request.answer_map(),
        time_spent=request.time_spent_map(),
        client_time_expired=request.time_expired,
    )
    score = result.score
    record = result.record
    return SubmitSessionResponse(
        session_id=result.session_id,
        record_id=record.id,
        weighted_score=score.weighted_score,
        percentage=score.percentage,
        breakdown=ScoreBreakdown(**score.breakdown),
        time_taken_minutes=result.time_taken_minutes,
        time_allotted_minutes=record.time_allotted_minutes,
        time_expired=result.time_expired,
        grade=record.grade,
        efficiency=record.efficiency,
        scoring_weights=ScoringWeightsSchema(**record.scoring_weights),
        message=(
            f"Test completed! Score: {score.weighted_score:g} "
            f"({score.correct}/{score.total} correct)"
        ),
    )


@router.post("/{session_id}/end", response_model=EndSessionResponse)
def end(
    session_id: str,
    identity: SubjectIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """
    End an attempt without submitting it. No performance record is created.

    Raises:
        404 unknown session, 403 not the owner, 409 already closed
    """
    test_session = end_session(db, session_id, identity)
    return EndSessionResponse(
        session_id=test_session.session_id,
        status=test_session.status.value,
        message="Test session ended without submission.",
    )


@router.get("/{session_id}/status", response_model=SessionStatusResponse)
def status(
    session_id: str,
    identity: SubjectIdentity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Elapsed and remaining time for a session, derived on read."""
    view = get_session_status(db, session_id, identity)
    return SessionStatusResponse(
        session_id=view.session_id,
        test_id=view.test_id,
        status=view.status.value,
        started_at=view.started_at,
        duration_minutes=view.duration_minutes,
        time_elapsed_minutes=view.time_elapsed_minutes,
        time_remaining_minutes=view.time_remaining_minutes,
        time_expired=view.time_expired,
        completed=view.completed,
    )
