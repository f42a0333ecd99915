"""
Session lifecycle controller: start, resume, submit, end and status.

State machine::

    (none) --start--> in_progress --submit--> submitted
                          |  \\--end------> abandoned
                          \\--start after duration + grace--> expired

Every transition out of ``in_progress`` is one conditional UPDATE
(``WHERE completed = false``), so two requests racing to close the same
session cannot both succeed. Creation is guarded by the partial unique
index ``ix_test_sessions_subject_test_active``; a lost creation race is
retried and normally resumes the winner's session.

Elapsed time is always derived from ``started_at`` and the server clock.
Running out of time is recorded (``time_expired``) but never penalized.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Mapping, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from examprep.core.config import settings
from examprep.core.datetime_utils import ensure_timezone_aware, minutes_between, utc_now
from examprep.core.error_responses import ErrorMessages
from examprep.core.exceptions import ConflictError
from examprep.core.identity import SubjectIdentity
from examprep.core.performance import build_performance_record
from examprep.core.scoring import ScoreResult, normalize_answers, score_submission
from examprep.core.session_store import (
    close_session_if_open,
    find_open_session,
    generate_session_id,
    get_session_or_404,
    retention_deadline,
    verify_session_ownership,
)
from examprep.core.test_definitions import TestDefinition, get_test_definition
from examprep.models import PerformanceRecord, SessionStatus, TestSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StartResult:
    session: TestSession
    test: TestDefinition
    resuming: bool
    time_remaining_minutes: float


@dataclass(frozen=True)
class SubmitResult:
    session_id: str
    record: PerformanceRecord
    score: ScoreResult
    time_taken_minutes: float
    time_expired: bool


@dataclass(frozen=True)
class SessionStatusView:
    session_id: str
    test_id: int
    status: SessionStatus
    started_at: datetime
    duration_minutes: int
    time_elapsed_minutes: float
    time_remaining_minutes: float
    time_expired: bool
    completed: bool


def _remaining(duration_minutes: int, elapsed_minutes: float) -> float:
    return round(max(0.0, duration_minutes - elapsed_minutes), 2)


def _elapsed(test_session: TestSession, until: datetime) -> float:
    return max(0.0, minutes_between(test_session.started_at, until))


def _within_grace(elapsed_minutes: float, duration_minutes: int) -> bool:
    return elapsed_minutes <= duration_minutes + settings.SESSION_GRACE_PERIOD_MINUTES


def _start_or_resume(
    db: Session, test: TestDefinition, identity: SubjectIdentity
) -> StartResult:
    """One attempt at start; IntegrityError propagates to the retry loop."""
    now = utc_now()
    existing = find_open_session(db, identity, test.id)

    if existing is not None:
        elapsed = _elapsed(existing, now)
        if _within_grace(elapsed, test.duration_minutes):
            logger.info(
                f"Resuming session {existing.session_id} for {identity}",
                extra={"session_id": existing.session_id, "test_id": test.id},
            )
            return StartResult(
                session=existing,
                test=test,
                resuming=True,
                time_remaining_minutes=_remaining(test.duration_minutes, elapsed),
            )

        # Past duration + grace: close as expired, no performance record
        if close_session_if_open(
            db,
            existing,
            time_expired=True,
            status=SessionStatus.EXPIRED,
            end_time=now,
        ):
            logger.info(
                f"Expired stale session {existing.session_id} "
                f"({elapsed:.1f} min elapsed on a {test.duration_minutes} min test)",
                extra={"session_id": existing.session_id, "test_id": test.id},
            )

    test_session = TestSession(
        session_id=generate_session_id(test.id, now),
        test_id=test.id,
        subject_key=identity.key,
        user_id=identity.user_id,
        email=identity.email,
        started_at=now,
        answers={},
        completed=False,
        time_expired=False,
        status=SessionStatus.IN_PROGRESS,
        expires_at=retention_deadline(now),
    )
    db.add(test_session)
    db.flush()
    db.commit()
    db.refresh(test_session)

    logger.info(
        f"Started session {test_session.session_id} for {identity}",
        extra={"session_id": test_session.session_id, "test_id": test.id},
    )
    return StartResult(
        session=test_session,
        test=test,
        resuming=False,
        time_remaining_minutes=float(test.duration_minutes),
    )


def start_session(
    db: Session, test_id: int, identity: SubjectIdentity
) -> StartResult:
    """
    Start a new attempt or resume the subject's open one.

    Raises:
        NotFoundError: Unknown test
        GoneError: Test inactive
        ConflictError: Creation kept colliding with concurrent starts
    """
    test = get_test_definition(db, test_id, require_active=True)

    for attempt in range(1, settings.SESSION_START_MAX_ATTEMPTS + 1):
        try:
            return _start_or_resume(db, test, identity)
        except IntegrityError:
            # Another request created the open session between our lookup and
            # insert; the partial unique index rejected ours.
            db.rollback()
            logger.warning(
                f"Concurrent start detected for {identity} on test {test_id} "
                f"(attempt {attempt}/{settings.SESSION_START_MAX_ATTEMPTS})",
                extra={"test_id": test_id},
            )

    raise ConflictError(ErrorMessages.SESSION_ALREADY_IN_PROGRESS)


def submit_session(
    db: Session,
    session_id: str,
    identity: SubjectIdentity,
    answers: Mapping[int, Optional[str]],
    time_spent: Optional[Mapping[int, int]] = None,
    client_time_expired: bool = False,
) -> SubmitResult:
    """
    Score an open session and write its performance record.

    Steps:
    1. Load the session and check ownership and that it is still open
    2. Load the test's current questions and weights
    3. Derive elapsed time and expiry from the server clock
    4. Score the answers
    5. Close the session with a conditional update; losing means conflict
    6. Add the performance record and commit both together

    Raises:
        NotFoundError: Unknown session or test
        ForbiddenError: Session belongs to another subject
        ConflictError: Session already closed (including a lost race)
    """
    # Step 1
    test_session = get_session_or_404(db, session_id)
    verify_session_ownership(test_session, identity)
    if test_session.completed:
        raise ConflictError(
            ErrorMessages.session_already_closed(test_session.status.value)
        )

    # Step 2
    test = get_test_definition(db, test_session.test_id)

    # Step 3
    now = utc_now()
    elapsed = _elapsed(test_session, now)
    time_expired = elapsed > test.duration_minutes or client_time_expired
    time_taken_minutes = round(elapsed, 2)

    # Step 4
    result = score_submission(test.questions, answers, test.weights, time_spent)
    stored_answers = {
        str(index): option
        for index, option in normalize_answers(answers).items()
        if 0 <= index < test.total_questions
    }

    # Step 5
    closed = close_session_if_open(
        db,
        test_session,
        status=SessionStatus.SUBMITTED,
        end_time=now,
        time_expired=time_expired,
        score=result.weighted_score,
        answers=stored_answers,
    )
    if not closed:
        db.rollback()
        logger.warning(
            f"Lost submit race on session {session_id}",
            extra={"session_id": session_id},
        )
        raise ConflictError(ErrorMessages.SESSION_ALREADY_SUBMITTED)

    # Step 6
    record = build_performance_record(
        session_id=test_session.session_id,
        identity=identity,
        test=test,
        result=result,
        started_at=ensure_timezone_aware(test_session.started_at),
        completed_at=now,
        time_taken_minutes=time_taken_minutes,
        time_expired=time_expired,
    )
    db.add(record)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        logger.warning(
            f"Performance record already exists for session {session_id}",
            extra={"session_id": session_id},
        )
        raise ConflictError(ErrorMessages.SESSION_ALREADY_SUBMITTED)
    db.commit()
    db.refresh(record)

    logger.info(
        f"Submitted session {session_id}: score={result.weighted_score} "
        f"({result.correct}/{result.total} correct, expired={time_expired})",
        extra={"session_id": session_id, "test_id": test.id, "record_id": record.id},
    )
    return SubmitResult(
        session_id=session_id,
        record=record,
        score=result,
        time_taken_minutes=time_taken_minutes,
        time_expired=time_expired,
    )


def end_session(
    db: Session, session_id: str, identity: SubjectIdentity
) -> TestSession:
    """
    Abandon an open session without scoring it.

    Raises:
        NotFoundError: Unknown session
        ForbiddenError: Session belongs to another subject
        ConflictError: Session already closed
    """
    test_session = get_session_or_404(db, session_id)
    verify_session_ownership(test_session, identity)
    if test_session.completed:
        raise ConflictError(
            ErrorMessages.session_already_closed(test_session.status.value)
        )

    closed = close_session_if_open(
        db,
        test_session,
        status=SessionStatus.ABANDONED,
        end_time=utc_now(),
        time_expired=True,
    )
    if not closed:
        db.rollback()
        db.refresh(test_session)
        raise ConflictError(
            ErrorMessages.session_already_closed(test_session.status.value)
        )
    db.commit()
    db.refresh(test_session)

    logger.info(
        f"Session {session_id} ended without submission",
        extra={"session_id": session_id, "test_id": test_session.test_id},
    )
    return test_session


def get_session_status(
    db: Session, session_id: str, identity: SubjectIdentity
) -> SessionStatusView:
    """
    Derived, read-only view of a session's timing.

    While open, ``time_expired`` is ``elapsed >= duration``; once closed it
    is the flag stored when the session closed and no time remains.
    """
    test_session = get_session_or_404(db, session_id)
    verify_session_ownership(test_session, identity)
    test = get_test_definition(db, test_session.test_id)

    if test_session.completed:
        until = (
            ensure_timezone_aware(test_session.end_time)
            if test_session.end_time is not None
            else utc_now()
        )
        elapsed = _elapsed(test_session, until)
        remaining = 0.0
        time_expired = bool(test_session.time_expired)
    else:
        elapsed = _elapsed(test_session, utc_now())
        remaining = _remaining(test.duration_minutes, elapsed)
        time_expired = elapsed >= test.duration_minutes

    return SessionStatusView(
        session_id=test_session.session_id,
        test_id=test_session.test_id,
        status=test_session.status,
        started_at=ensure_timezone_aware(test_session.started_at),
        duration_minutes=test.duration_minutes,
        time_elapsed_minutes=round(elapsed, 2),
        time_remaining_minutes=remaining,
        time_expired=time_expired,
        completed=bool(test_session.completed),
    )


def grace_deadline(test_session: TestSession, duration_minutes: int) -> datetime:
    """Last instant at which ``start`` still resumes this session."""
    return ensure_timezone_aware(test_session.started_at) + timedelta(
        minutes=duration_minutes + settings.SESSION_GRACE_PERIOD_MINUTES
    )
