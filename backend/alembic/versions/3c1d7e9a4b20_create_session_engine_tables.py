"""create session engine tables

Revision ID: 3c1d7e9a4b20
Revises:
Create Date: 2026-10-19 09:12:44.310218

Creates tests (read-only test definitions), test_sessions (ephemeral
attempts) and performance_records (immutable results).

ix_test_sessions_subject_test_active is a partial unique index: at most one
open (completed = false) session per subject and test. Concurrent starts
that both pass the application-level lookup collide here with an
IntegrityError, which the start operation retries.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c1d7e9a4b20"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

session_status = sa.Enum(
    "IN_PROGRESS", "SUBMITTED", "ABANDONED", "EXPIRED", name="sessionstatus"
)
submission_type = sa.Enum("MANUAL", "TIMEOUT", name="submissiontype")


def upgrade() -> None:
    op.create_table(
        "tests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("paper", sa.String(length=100), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("questions", sa.JSON(), nullable=False),
        sa.Column("scoring_correct", sa.Float(), nullable=True),
        sa.Column("scoring_wrong", sa.Float(), nullable=True),
        sa.Column("scoring_unanswered", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "duration_minutes BETWEEN 1 AND 600", name="ck_tests_duration_range"
        ),
        sa.CheckConstraint("year BETWEEN 2000 AND 2030", name="ck_tests_year_range"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tests_id", "tests", ["id"])

    op.create_table(
        "test_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.String(length=80), nullable=False),
        sa.Column("test_id", sa.Integer(), nullable=False),
        sa.Column("subject_key", sa.String(length=320), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("answers", sa.JSON(), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False),
        sa.Column("time_expired", sa.Boolean(), nullable=False),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("status", session_status, nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["test_id"], ["tests.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_test_sessions_id", "test_sessions", ["id"])
    op.create_index(
        "ix_test_sessions_session_id", "test_sessions", ["session_id"], unique=True
    )
    op.create_index("ix_test_sessions_test_id", "test_sessions", ["test_id"])
    op.create_index("ix_test_sessions_subject_key", "test_sessions", ["subject_key"])
    op.create_index("ix_test_sessions_status", "test_sessions", ["status"])
    op.create_index("ix_test_sessions_expires_at", "test_sessions", ["expires_at"])
    op.create_index(
        "ix_test_sessions_subject_test_active",
        "test_sessions",
        ["subject_key", "test_id"],
        unique=True,
        postgresql_where=sa.text("completed = false"),
        sqlite_where=sa.text("completed = 0"),
    )

    op.create_table(
        "performance_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.String(length=80), nullable=False),
        sa.Column("test_id", sa.Integer(), nullable=False),
        sa.Column("subject_key", sa.String(length=320), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("test_name", sa.String(length=200), nullable=False),
        sa.Column("test_year", sa.Integer(), nullable=False),
        sa.Column("test_paper", sa.String(length=100), nullable=False),
        sa.Column("total_questions", sa.Integer(), nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("correct_count", sa.Integer(), nullable=False),
        sa.Column("wrong_count", sa.Integer(), nullable=False),
        sa.Column("unanswered_count", sa.Integer(), nullable=False),
        sa.Column("percentage", sa.Float(), nullable=False),
        sa.Column("time_taken_minutes", sa.Float(), nullable=False),
        sa.Column("time_allotted_minutes", sa.Integer(), nullable=False),
        sa.Column("time_expired", sa.Boolean(), nullable=False),
        sa.Column("submission_type", submission_type, nullable=False),
        sa.Column("scoring_weights", sa.JSON(), nullable=False),
        sa.Column("answers", sa.JSON(), nullable=False),
        sa.Column("analytics", sa.JSON(), nullable=False),
        sa.Column("performance_summary", sa.JSON(), nullable=False),
        sa.Column("grade", sa.String(length=2), nullable=False),
        sa.Column("efficiency", sa.String(length=20), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("review", sa.JSON(), nullable=True),
        sa.CheckConstraint(
            "percentage >= 0 AND percentage <= 100",
            name="ck_performance_records_percentage_range",
        ),
        sa.ForeignKeyConstraint(["test_id"], ["tests.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("session_id"),
    )
    op.create_index("ix_performance_records_id", "performance_records", ["id"])
    op.create_index(
        "ix_performance_records_test_id", "performance_records", ["test_id"]
    )
    op.create_index(
        "ix_performance_records_subject_key", "performance_records", ["subject_key"]
    )
    op.create_index(
        "ix_performance_records_completed_at", "performance_records", ["completed_at"]
    )
    op.create_index(
        "ix_performance_records_subject_completed",
        "performance_records",
        ["subject_key", "completed_at"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_performance_records_subject_completed", table_name="performance_records"
    )
    op.drop_index("ix_performance_records_completed_at", table_name="performance_records")
    op.drop_index("ix_performance_records_subject_key", table_name="performance_records")
    op.drop_index("ix_performance_records_test_id", table_name="performance_records")
    op.drop_index("ix_performance_records_id", table_name="performance_records")
    op.drop_table("performance_records")

    op.drop_index("ix_test_sessions_subject_test_active", table_name="test_sessions")
    op.drop_index("ix_test_sessions_expires_at", table_name="test_sessions")
    op.drop_index("ix_test_sessions_status", table_name="test_sessions")
    op.drop_index("ix_test_sessions_subject_key", table_name="test_sessions")
    op.drop_index("ix_test_sessions_test_id", table_name="test_sessions")
    op.drop_index("ix_test_sessions_session_id", table_name="test_sessions")
    op.drop_index("ix_test_sessions_id", table_name="test_sessions")
    op.drop_table("test_sessions")

    op.drop_index("ix_tests_id", table_name="tests")
    op.drop_table("tests")

    bind = op.get_bind()
    submission_type.drop(bind, checkfirst=True)
    session_status.drop(bind, checkfirst=True)
