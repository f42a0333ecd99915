"""
Performance records: derived fields, creation and read access.

A record is built once, in the submit transaction, from a ScoreResult and
the test snapshot. Afterwards only its ``review`` may change (see the
``before_update`` listener in ``examprep.models.models``).
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from examprep.core.datetime_utils import utc_now
from examprep.core.error_responses import ErrorMessages
from examprep.core.exceptions import ForbiddenError, NotFoundError
from examprep.core.identity import SubjectIdentity
from examprep.core.scoring import Outcome, QuestionResult, ScoreResult
from examprep.core.test_definitions import TestDefinition
from examprep.models import PerformanceRecord, SubmissionType

logger = logging.getLogger(__name__)

# Ordered (threshold, grade) pairs; the first threshold the percentage reaches wins
GRADE_BUCKETS: Tuple[Tuple[float, str], ...] = (
    (90.0, "A+"),
    (80.0, "A"),
    (70.0, "B+"),
    (60.0, "B"),
    (50.0, "C+"),
    (40.0, "C"),
    (33.0, "D"),
)
FAILING_GRADE = "F"

# Ordered (threshold, label) pairs over accuracy per unit of time used
EFFICIENCY_BUCKETS: Tuple[Tuple[float, str], ...] = (
    (1.5, "excellent"),
    (1.0, "good"),
    (0.6, "average"),
)
LOWEST_EFFICIENCY = "needs_improvement"

# Floor for the share of allotted time used, so instant submissions stay finite
MIN_TIME_FRACTION = 0.05

DIFFICULTY_KEYS = ("easy", "medium", "hard")

DEFAULT_HISTORY_PAGE_SIZE = 20
MAX_HISTORY_PAGE_SIZE = 100


def calculate_grade(percentage: float) -> str:
    """Letter grade for a percentage."""
    for threshold, grade in GRADE_BUCKETS:
        if percentage >= threshold:
            return grade
    return FAILING_GRADE


def calculate_efficiency(
    percentage: float, time_taken_minutes: float, time_allotted_minutes: float
) -> str:
    """
    Categorize how much accuracy was achieved for the time spent.

    The ratio is ``(percentage / 100) / time_fraction`` where
    ``time_fraction`` is the share of the allotted time used, floored at
    MIN_TIME_FRACTION. 80% in half the time is 1.6 ("excellent"); 50% using
    the whole allotment is 0.5 ("needs_improvement").
    """
    if time_allotted_minutes > 0:
        time_fraction = max(time_taken_minutes / time_allotted_minutes, MIN_TIME_FRACTION)
    else:
        time_fraction = 1.0
    ratio = (percentage / 100.0) / time_fraction
    for threshold, label in EFFICIENCY_BUCKETS:
        if ratio >= threshold:
            return label
    return LOWEST_EFFICIENCY


def calculate_performance_summary(
    result: ScoreResult, time_taken_minutes: float, time_allotted_minutes: float
) -> Dict[str, float]:
    answered = result.correct + result.wrong
    completion_rate = (answered / result.total * 100) if result.total else 0.0
    time_utilization = (
        time_taken_minutes / time_allotted_minutes * 100
        if time_allotted_minutes
        else 0.0
    )
    return {
        "accuracy": result.percentage,
        "completion_rate": round(completion_rate, 1),
        "time_utilization": round(time_utilization, 1),
    }


def _empty_tally() -> Dict[str, int]:
    return {"correct": 0, "wrong": 0, "unanswered": 0, "total": 0}


def calculate_analytics(questions: Sequence[QuestionResult]) -> Dict[str, Any]:
    """
    Subject-wise and difficulty-wise tallies plus time-per-question.

    Returns:
        {
            "subject_wise": {area: {correct, wrong, unanswered, total, percentage}},
            "difficulty_wise": {"easy"|"medium"|"hard": {correct, wrong, unanswered, total}},
            "average_time_per_question": float,  # seconds, over all questions; untimed count as 0
            "total_time_spent": int,  # seconds
        }
    """
    subject_wise: Dict[str, Dict[str, Any]] = {}
    difficulty_wise = {key: _empty_tally() for key in DIFFICULTY_KEYS}
    total_time = 0

    for question in questions:
        outcome_key = question.outcome.value
        subject = subject_wise.setdefault(question.area, _empty_tally())
        subject[outcome_key] += 1
        subject["total"] += 1

        difficulty = difficulty_wise.setdefault(
            question.difficulty.lower(), _empty_tally()
        )
        difficulty[outcome_key] += 1
        difficulty["total"] += 1

        if question.time_spent_seconds is not None:
            total_time += question.time_spent_seconds

    for tally in subject_wise.values():
        tally["percentage"] = (
            round(tally["correct"] / tally["total"] * 100, 1) if tally["total"] else 0.0
        )

    return {
        "subject_wise": subject_wise,
        "difficulty_wise": difficulty_wise,
        "average_time_per_question": (
            round(total_time / len(questions), 1) if questions else 0.0
        ),
        "total_time_spent": total_time,
    }


def build_performance_record(
    *,
    session_id: str,
    identity: SubjectIdentity,
    test: TestDefinition,
    result: ScoreResult,
    started_at: datetime,
    completed_at: datetime,
    time_taken_minutes: float,
    time_expired: bool,
) -> PerformanceRecord:
    """Assemble the immutable record for a scored submission (not yet added)."""
    return PerformanceRecord(
        session_id=session_id,
        test_id=test.id,
        subject_key=identity.key,
        user_id=identity.user_id,
        email=identity.email,
        test_name=test.name,
        test_year=test.year,
        test_paper=test.paper,
        total_questions=result.total,
        score=result.weighted_score,
        correct_count=result.correct,
        wrong_count=result.wrong,
        unanswered_count=result.unanswered,
        percentage=result.percentage,
        time_taken_minutes=time_taken_minutes,
        time_allotted_minutes=test.duration_minutes,
        time_expired=time_expired,
        submission_type=(
            SubmissionType.TIMEOUT if time_expired else SubmissionType.MANUAL
        ),
        scoring_weights=test.weights.as_dict(),
        answers=[question.to_dict() for question in result.questions],
        analytics=calculate_analytics(result.questions),
        performance_summary=calculate_performance_summary(
            result, time_taken_minutes, test.duration_minutes
        ),
        grade=calculate_grade(result.percentage),
        efficiency=calculate_efficiency(
            result.percentage, time_taken_minutes, test.duration_minutes
        ),
        started_at=started_at,
        completed_at=completed_at,
    )


def get_record_for_subject(
    db: Session, record_id: int, identity: SubjectIdentity
) -> PerformanceRecord:
    """
    Fetch a record and check it belongs to the caller.

    Raises:
        NotFoundError: Unknown record id
        ForbiddenError: Record belongs to someone else
    """
    record = (
        db.query(PerformanceRecord).filter(PerformanceRecord.id == record_id).first()
    )
    if record is None:
        raise NotFoundError(ErrorMessages.RECORD_NOT_FOUND)
    if record.subject_key != identity.key:
        raise ForbiddenError(ErrorMessages.RECORD_ACCESS_DENIED)
    return record


def list_records_for_subject(
    db: Session,
    identity: SubjectIdentity,
    limit: int = DEFAULT_HISTORY_PAGE_SIZE,
    offset: int = 0,
) -> Tuple[List[PerformanceRecord], int]:
    """The caller's records, most recent first, plus the total count."""
    query = db.query(PerformanceRecord).filter(
        PerformanceRecord.subject_key == identity.key
    )
    total = query.count()
    records = (
        query.order_by(
            PerformanceRecord.completed_at.desc(), PerformanceRecord.id.desc()
        )
        .offset(offset)
        .limit(limit)
        .all()
    )
    return records, total


def incorrect_answers(record: PerformanceRecord) -> List[Dict[str, Any]]:
    """Per-question details the subject answered wrongly."""
    return [
        answer
        for answer in record.answers or []
        if answer.get("outcome") == Outcome.WRONG.value
    ]


def attach_feedback(
    db: Session,
    record: PerformanceRecord,
    difficulty: str,
    quality: int,
    comments: Optional[str] = None,
) -> PerformanceRecord:
    """
    Attach or replace the review on a record and commit.

    The review is the one part of a record that may change after creation.
    """
    record.review = {
        "has_reviewed": True,
        "reviewed_at": utc_now().isoformat(),
        "feedback": {
            "difficulty": difficulty,
            "quality": quality,
            "comments": comments,
        },
    }
    db.commit()
    db.refresh(record)
    logger.info(
        f"Feedback attached to performance record {record.id}",
        extra={"record_id": record.id},
    )
    return record
