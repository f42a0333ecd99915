"""
Database models for the timed assessment session engine.

Three tables:

- ``tests``: test definitions, written by the content pipeline and only
  read here.
- ``test_sessions``: ephemeral attempt state, purged after the retention
  window.
- ``performance_records``: permanent, immutable results of submitted
  attempts.
"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    Enum,
    Float,
    JSON,
    Index,
    CheckConstraint,
    event,
    inspect,
    text,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import enum

from examprep.core.exceptions import ImmutableRecordError
from .base import Base


class SessionStatus(str, enum.Enum):
    """How a session ended (or that it has not)."""

    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    ABANDONED = "abandoned"
    EXPIRED = "expired"


class SubmissionType(str, enum.Enum):
    """How a submitted attempt reached the engine."""

    MANUAL = "manual"
    TIMEOUT = "timeout"


class Test(Base):
    """
    Test definition: metadata, questions and scoring weights.

    ``questions`` is a JSON list; each entry holds ``qid``, ``question``,
    ``difficulty`` (Easy/Medium/Hard), ``area``, ``options`` (four
    ``{key, text, correct}`` objects keyed A-D) and an optional
    ``explanation``. A question's index in the list is its stable id.
    """

    __tablename__ = "tests"
    __test__ = False  # not a pytest class

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    year = Column(Integer, nullable=False)
    paper = Column(String(100), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    questions = Column(JSON, nullable=False, default=list)

    # Scoring weights; NULL means "use the configured default"
    scoring_correct = Column(Float, nullable=True)
    scoring_wrong = Column(Float, nullable=True)
    scoring_unanswered = Column(Float, nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    sessions = relationship("TestSession", back_populates="test")

    __table_args__ = (
        CheckConstraint(
            "duration_minutes BETWEEN 1 AND 600", name="ck_tests_duration_range"
        ),
        CheckConstraint("year BETWEEN 2000 AND 2030", name="ck_tests_year_range"),
    )


class TestSession(Base):
    """
    One attempt at a test by one subject.

    ``completed`` means closed (submitted, abandoned or expired); ``status``
    records which. At most one open session may exist per subject and test.
    """

    __tablename__ = "test_sessions"
    __test__ = False  # not a pytest class

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(80), nullable=False, unique=True, index=True)
    test_id = Column(
        Integer, ForeignKey("tests.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Identity as supplied by the auth collaborator
    subject_key = Column(String(320), nullable=False, index=True)
    user_id = Column(String(64), nullable=True)
    email = Column(String(255), nullable=True)

    started_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    end_time = Column(DateTime(timezone=True), nullable=True)
    answers = Column(JSON, nullable=False, default=dict)
    completed = Column(Boolean, default=False, nullable=False)
    time_expired = Column(Boolean, default=False, nullable=False)
    score = Column(Float, nullable=True)
    status = Column(
        Enum(SessionStatus),
        default=SessionStatus.IN_PROGRESS,
        nullable=False,
        index=True,
    )

    # Retention marker; rows past this instant are purged
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)

    test = relationship("Test", back_populates="sessions")

    __table_args__ = (
        # Only one open attempt per (subject, test); closed rows are unconstrained
        Index(
            "ix_test_sessions_subject_test_active",
            "subject_key",
            "test_id",
            unique=True,
            sqlite_where=text("completed = 0"),
            postgresql_where=text("completed = false"),
        ),
    )


class PerformanceRecord(Base):
    """
    Immutable result of a submitted attempt.

    ``session_id`` is a plain copy of the session token rather than a foreign
    key: sessions are purged after a day, records are kept forever. Only
    ``review`` may change after the row is written.
    """

    __tablename__ = "performance_records"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(80), nullable=False, unique=True)
    test_id = Column(
        Integer, ForeignKey("tests.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    subject_key = Column(String(320), nullable=False, index=True)
    user_id = Column(String(64), nullable=True)
    email = Column(String(255), nullable=True)

    # Test metadata copied at submission time
    test_name = Column(String(200), nullable=False)
    test_year = Column(Integer, nullable=False)
    test_paper = Column(String(100), nullable=False)
    total_questions = Column(Integer, nullable=False)

    score = Column(Float, nullable=False)
    correct_count = Column(Integer, nullable=False)
    wrong_count = Column(Integer, nullable=False)
    unanswered_count = Column(Integer, nullable=False)
    percentage = Column(Float, nullable=False)

    time_taken_minutes = Column(Float, nullable=False)
    time_allotted_minutes = Column(Integer, nullable=False)
    time_expired = Column(Boolean, default=False, nullable=False)
    submission_type = Column(
        Enum(SubmissionType), default=SubmissionType.MANUAL, nullable=False
    )

    scoring_weights = Column(JSON, nullable=False)
    answers = Column(JSON, nullable=False)
    analytics = Column(JSON, nullable=False)
    performance_summary = Column(JSON, nullable=False)
    grade = Column(String(2), nullable=False)
    efficiency = Column(String(20), nullable=False)

    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    # Post-hoc feedback: {has_reviewed, reviewed_at, feedback{difficulty, quality, comments}}
    review = Column(JSON, nullable=True)

    __table_args__ = (
        Index("ix_performance_records_subject_completed", "subject_key", "completed_at"),
        CheckConstraint(
            "percentage >= 0 AND percentage <= 100",
            name="ck_performance_records_percentage_range",
        ),
    )


# Columns that may change after a record has been written
RECORD_MUTABLE_FIELDS = frozenset({"review"})


@event.listens_for(PerformanceRecord, "before_update")
def _reject_record_mutation(mapper, connection, target: PerformanceRecord) -> None:
    """Refuse to flush changes to any column other than review."""
    state = inspect(target)
    changed = [
        attr.key
        for attr in state.attrs
        if attr.key not in RECORD_MUTABLE_FIELDS and attr.history.has_changes()
    ]
    if changed:
        raise ImmutableRecordError(
            f"Performance record {target.id} is immutable; attempted to change: "
            f"{', '.join(sorted(changed))}"
        )
