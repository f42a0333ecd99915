"""
Tests for the session lifecycle controller (start, resume, submit, end, status).
"""
import threading
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from examprep.core.datetime_utils import utc_now
from examprep.core.exceptions import (
    ConflictError,
    ForbiddenError,
    GoneError,
    NotFoundError,
)
from examprep.core.identity import SubjectIdentity
from examprep.core.session_lifecycle import (
    end_session,
    get_session_status,
    start_session,
    submit_session,
)
from examprep.core.session_store import retention_deadline
from examprep.models import (
    PerformanceRecord,
    SessionStatus,
    SubmissionType,
    TestSession,
)
from tests.factories import backdate_session

EXAMPLE_ANSWERS = {0: "A", 1: "B", 2: "C", 3: "A"}


def _records(db):
    return db.query(PerformanceRecord).all()


def _open_sessions(db, test_id):
    return (
        db.query(TestSession)
        .filter(TestSession.test_id == test_id, TestSession.completed.is_(False))
        .all()
    )


class TestStartSession:
    """Tests for starting and resuming attempts."""

    def test_start_creates_open_session(self, db_session, sample_test, identity):
        result = start_session(db_session, sample_test.id, identity)

        test_session = result.session
        assert result.resuming is False
        assert result.time_remaining_minutes == 30.0
        assert test_session.session_id.startswith(f"ses_{sample_test.id}_")
        assert test_session.status == SessionStatus.IN_PROGRESS
        assert test_session.completed is False
        assert test_session.subject_key == "user:1001"
        assert test_session.email == "student@example.com"
        assert test_session.expires_at == retention_deadline(test_session.started_at)

    def test_second_start_resumes(self, db_session, sample_test, identity):
        first = start_session(db_session, sample_test.id, identity)
        second = start_session(db_session, sample_test.id, identity)

        assert second.resuming is True
        assert second.session.session_id == first.session.session_id
        assert len(_open_sessions(db_session, sample_test.id)) == 1

    def test_resume_reports_remaining_time(self, db_session, sample_test, identity):
        first = start_session(db_session, sample_test.id, identity)
        backdate_session(db_session, first.session.session_id, minutes=10)

        second = start_session(db_session, sample_test.id, identity)

        assert second.resuming is True
        assert 19.9 <= second.time_remaining_minutes <= 20.0

    def test_resume_within_grace_after_duration(
        self, db_session, sample_test, identity
    ):
        """45 minutes into a 30-minute test is still inside the 30-minute grace."""
        first = start_session(db_session, sample_test.id, identity)
        backdate_session(db_session, first.session.session_id, minutes=45)

        second = start_session(db_session, sample_test.id, identity)

        assert second.resuming is True
        assert second.session.session_id == first.session.session_id
        assert second.time_remaining_minutes == 0.0

    def test_stale_session_expires_and_new_one_starts(
        self, db_session, sample_test, identity
    ):
        first = start_session(db_session, sample_test.id, identity)
        stale_id = first.session.session_id
        backdate_session(db_session, stale_id, minutes=61)

        second = start_session(db_session, sample_test.id, identity)

        assert second.resuming is False
        assert second.session.session_id != stale_id
        db_session.expire_all()
        stale = (
            db_session.query(TestSession)
            .filter(TestSession.session_id == stale_id)
            .one()
        )
        assert stale.completed is True
        assert stale.time_expired is True
        assert stale.status == SessionStatus.EXPIRED
        assert stale.end_time is not None
        assert _records(db_session) == []
        assert len(_open_sessions(db_session, sample_test.id)) == 1

    def test_subjects_get_separate_sessions(
        self, db_session, sample_test, identity, other_identity
    ):
        mine = start_session(db_session, sample_test.id, identity)
        theirs = start_session(db_session, sample_test.id, other_identity)

        assert mine.session.session_id != theirs.session.session_id
        assert theirs.resuming is False

    def test_open_sessions_on_different_tests(
        self, db_session, sample_test, test_factory, identity
    ):
        other_test = test_factory(name="Another mock")

        first = start_session(db_session, sample_test.id, identity)
        second = start_session(db_session, other_test.id, identity)

        assert second.resuming is False
        assert first.session.session_id != second.session.session_id

    def test_unknown_test(self, db_session, identity):
        with pytest.raises(NotFoundError):
            start_session(db_session, 9999, identity)

    def test_inactive_test(self, db_session, test_factory, identity):
        test = test_factory(is_active=False)

        with pytest.raises(GoneError):
            start_session(db_session, test.id, identity)

        assert db_session.query(TestSession).count() == 0


class TestConcurrentStart:
    """Tests for the partial unique index and the start retry loop."""

    def test_index_rejects_second_open_session(self, db_session, sample_test):
        now = utc_now()
        for suffix in ("a", "b"):
            db_session.add(
                TestSession(
                    session_id=f"ses_manual_{suffix}",
                    test_id=sample_test.id,
                    subject_key="user:1001",
                    started_at=now,
                    expires_at=retention_deadline(now),
                )
            )

        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_index_ignores_closed_sessions(self, db_session, sample_test):
        now = utc_now()
        db_session.add_all(
            [
                TestSession(
                    session_id=f"ses_closed_{n}",
                    test_id=sample_test.id,
                    subject_key="user:1001",
                    started_at=now,
                    expires_at=retention_deadline(now),
                    completed=True,
                    status=SessionStatus.ABANDONED,
                )
                for n in range(3)
            ]
            + [
                TestSession(
                    session_id="ses_open",
                    test_id=sample_test.id,
                    subject_key="user:1001",
                    started_at=now,
                    expires_at=retention_deadline(now),
                )
            ]
        )
        db_session.commit()

        assert db_session.query(TestSession).count() == 4

    def test_lost_race_resumes_winner(
        self, db_session, testing_session_local, sample_test, identity
    ):
        """A racer inserts between our lookup and insert; the retry resumes it."""
        original_flush = Session.flush
        raced = []

        def racing_flush(session, *args, **kwargs):
            if session is db_session and not raced:
                raced.append(True)
                now = utc_now()
                racer = testing_session_local()
                try:
                    racer.add(
                        TestSession(
                            session_id="ses_racer",
                            test_id=sample_test.id,
                            subject_key=identity.key,
                            user_id=identity.user_id,
                            started_at=now,
                            expires_at=retention_deadline(now),
                        )
                    )
                    racer.commit()
                finally:
                    racer.close()
                raise IntegrityError("INSERT INTO test_sessions", {}, Exception("UNIQUE"))
            return original_flush(session, *args, **kwargs)

        with patch.object(Session, "flush", racing_flush):
            result = start_session(db_session, sample_test.id, identity)

        assert result.resuming is True
        assert result.session.session_id == "ses_racer"
        assert len(_open_sessions(db_session, sample_test.id)) == 1

    def test_repeated_collisions_surface_as_conflict(
        self, db_session, sample_test, identity
    ):
        original_flush = Session.flush

        def failing_flush(session, *args, **kwargs):
            if session is db_session and session.new:
                raise IntegrityError("INSERT INTO test_sessions", {}, Exception("UNIQUE"))
            return original_flush(session, *args, **kwargs)

        with patch.object(Session, "flush", failing_flush):
            with pytest.raises(ConflictError, match="same moment"):
                start_session(db_session, sample_test.id, identity)

        assert db_session.query(TestSession).count() == 0

    def test_parallel_starts_share_one_session(
        self, db_session, testing_session_local, sample_test, identity
    ):
        barrier = threading.Barrier(2)
        session_ids = []
        errors = []

        def worker():
            db = testing_session_local()
            try:
                barrier.wait(timeout=5)
                result = start_session(db, sample_test.id, identity)
                session_ids.append(result.session.session_id)
            except Exception as e:
                errors.append(e)
            finally:
                db.close()

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert errors == []
        assert len(session_ids) == 2
        assert session_ids[0] == session_ids[1]
        assert len(_open_sessions(db_session, sample_test.id)) == 1


class TestSubmitSession:
    """Tests for submitting attempts."""

    def test_submit_scores_and_closes(self, db_session, sample_test, identity):
        started = start_session(db_session, sample_test.id, identity)
        session_id = started.session.session_id

        result = submit_session(db_session, session_id, identity, EXAMPLE_ANSWERS)

        assert result.score.weighted_score == 11
        assert result.score.percentage == 60.0
        assert result.time_expired is False
        assert result.record.session_id == session_id
        assert result.record.submission_type == SubmissionType.MANUAL

        db_session.expire_all()
        closed = db_session.query(TestSession).filter_by(session_id=session_id).one()
        assert closed.completed is True
        assert closed.status == SessionStatus.SUBMITTED
        assert closed.score == 11
        assert closed.answers == {"0": "A", "1": "B", "2": "C", "3": "A"}
        assert closed.end_time is not None

    def test_out_of_range_answers_not_stored(self, db_session, sample_test, identity):
        started = start_session(db_session, sample_test.id, identity)
        session_id = started.session.session_id

        submit_session(db_session, session_id, identity, {0: "a", 7: "B", -2: "C"})

        db_session.expire_all()
        closed = db_session.query(TestSession).filter_by(session_id=session_id).one()
        assert closed.answers == {"0": "A"}

    def test_double_submit_conflicts(self, db_session, sample_test, identity):
        started = start_session(db_session, sample_test.id, identity)
        session_id = started.session.session_id
        submit_session(db_session, session_id, identity, EXAMPLE_ANSWERS)

        with pytest.raises(ConflictError, match="status: submitted"):
            submit_session(db_session, session_id, identity, {0: "B"})

        records = _records(db_session)
        assert len(records) == 1
        assert records[0].score == 11

    def test_lost_close_race_conflicts_without_record(
        self, db_session, sample_test, identity
    ):
        started = start_session(db_session, sample_test.id, identity)

        with patch(
            "examprep.core.session_lifecycle.close_session_if_open",
            return_value=False,
        ):
            with pytest.raises(ConflictError, match="already been submitted"):
                submit_session(
                    db_session, started.session.session_id, identity, EXAMPLE_ANSWERS
                )

        assert _records(db_session) == []

    def test_late_submit_is_flagged_not_penalized(
        self, db_session, sample_test, identity
    ):
        started = start_session(db_session, sample_test.id, identity)
        backdate_session(db_session, started.session.session_id, minutes=31)

        result = submit_session(
            db_session, started.session.session_id, identity, EXAMPLE_ANSWERS
        )

        assert result.time_expired is True
        assert result.score.weighted_score == 11
        assert result.record.submission_type == SubmissionType.TIMEOUT
        assert result.record.time_expired is True
        assert result.time_taken_minutes >= 31

    def test_client_reported_timeout(self, db_session, sample_test, identity):
        started = start_session(db_session, sample_test.id, identity)

        result = submit_session(
            db_session,
            started.session.session_id,
            identity,
            {},
            client_time_expired=True,
        )

        assert result.time_expired is True
        assert result.record.submission_type == SubmissionType.TIMEOUT
        assert result.score.unanswered == 5

    def test_submit_after_end_conflicts(self, db_session, sample_test, identity):
        started = start_session(db_session, sample_test.id, identity)
        session_id = started.session.session_id
        end_session(db_session, session_id, identity)

        with pytest.raises(ConflictError, match="status: abandoned"):
            submit_session(db_session, session_id, identity, EXAMPLE_ANSWERS)

        assert _records(db_session) == []

    def test_submit_uses_current_weights(self, db_session, sample_test, identity):
        started = start_session(db_session, sample_test.id, identity)
        sample_test.scoring_correct = 1.0
        sample_test.scoring_wrong = -0.25
        db_session.commit()

        result = submit_session(
            db_session, started.session.session_id, identity, EXAMPLE_ANSWERS
        )

        assert result.score.weighted_score == 2.75
        assert result.record.scoring_weights["wrong"] == -0.25

    def test_submit_to_inactive_test_still_scores(
        self, db_session, sample_test, identity
    ):
        started = start_session(db_session, sample_test.id, identity)
        sample_test.is_active = False
        db_session.commit()

        result = submit_session(db_session, started.session.session_id, identity, {})

        assert result.score.total == 5

    def test_unknown_session(self, db_session, identity):
        with pytest.raises(NotFoundError):
            submit_session(db_session, "ses_missing", identity, {})

    def test_other_subject_cannot_submit(
        self, db_session, sample_test, identity, other_identity
    ):
        started = start_session(db_session, sample_test.id, identity)

        with pytest.raises(ForbiddenError):
            submit_session(
                db_session, started.session.session_id, other_identity, {0: "A"}
            )

        assert _records(db_session) == []


class TestEndSession:
    """Tests for abandoning attempts."""

    def test_end_abandons_without_record(self, db_session, sample_test, identity):
        started = start_session(db_session, sample_test.id, identity)

        ended = end_session(db_session, started.session.session_id, identity)

        assert ended.completed is True
        assert ended.time_expired is True
        assert ended.status == SessionStatus.ABANDONED
        assert _records(db_session) == []

    def test_end_twice_conflicts(self, db_session, sample_test, identity):
        started = start_session(db_session, sample_test.id, identity)
        end_session(db_session, started.session.session_id, identity)

        with pytest.raises(ConflictError):
            end_session(db_session, started.session.session_id, identity)

    def test_start_after_end_creates_new_session(
        self, db_session, sample_test, identity
    ):
        started = start_session(db_session, sample_test.id, identity)
        end_session(db_session, started.session.session_id, identity)

        again = start_session(db_session, sample_test.id, identity)

        assert again.resuming is False
        assert again.session.session_id != started.session.session_id

    def test_other_subject_cannot_end(
        self, db_session, sample_test, identity, other_identity
    ):
        started = start_session(db_session, sample_test.id, identity)

        with pytest.raises(ForbiddenError):
            end_session(db_session, started.session.session_id, other_identity)


class TestSessionStatus:
    """Tests for the derived timing view."""

    def test_fresh_session(self, db_session, sample_test, identity):
        started = start_session(db_session, sample_test.id, identity)

        view = get_session_status(db_session, started.session.session_id, identity)

        assert view.status == SessionStatus.IN_PROGRESS
        assert view.completed is False
        assert view.time_expired is False
        assert view.duration_minutes == 30
        assert view.time_remaining_minutes > 29.9

    def test_open_session_past_duration(self, db_session, sample_test, identity):
        started = start_session(db_session, sample_test.id, identity)
        backdate_session(db_session, started.session.session_id, minutes=31)

        view = get_session_status(db_session, started.session.session_id, identity)

        assert view.time_expired is True
        assert view.time_remaining_minutes == 0.0
        assert view.completed is False

    def test_submitted_session_uses_stored_flag(
        self, db_session, sample_test, identity
    ):
        started = start_session(db_session, sample_test.id, identity)
        submit_session(db_session, started.session.session_id, identity, {})

        view = get_session_status(db_session, started.session.session_id, identity)

        assert view.status == SessionStatus.SUBMITTED
        assert view.completed is True
        assert view.time_expired is False
        assert view.time_remaining_minutes == 0.0

    def test_other_subject_cannot_read_status(
        self, db_session, sample_test, identity, other_identity
    ):
        started = start_session(db_session, sample_test.id, identity)

        with pytest.raises(ForbiddenError):
            get_session_status(db_session, started.session.session_id, other_identity)

    def test_email_only_subject(self, db_session, sample_test):
        guest = SubjectIdentity(email="guest@example.com")
        started = start_session(db_session, sample_test.id, guest)

        view = get_session_status(db_session, started.session.session_id, guest)

        assert view.session_id == started.session.session_id
        assert started.session.subject_key == "email:guest@example.com"

    def test_clock_is_read_through_utc_now(self, db_session, sample_test, identity):
        started = start_session(db_session, sample_test.id, identity)
        later = utc_now() + timedelta(minutes=12)

        with patch("examprep.core.session_lifecycle.utc_now", return_value=later):
            view = get_session_status(
                db_session, started.session.session_id, identity
            )

        assert 11.9 <= view.time_elapsed_minutes <= 12.1
        assert 17.9 <= view.time_remaining_minutes <= 18.1
