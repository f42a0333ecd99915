"""
Session store operations.

Sessions are ephemeral rows in ``test_sessions``. Everything that closes a
session goes through :func:`close_session_if_open`, a single conditional
UPDATE whose affected-row count tells the caller whether it won the race.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from examprep.core.config import settings
from examprep.core.datetime_utils import utc_now
from examprep.core.error_responses import ErrorMessages
from examprep.core.exceptions import ForbiddenError, NotFoundError
from examprep.core.identity import SubjectIdentity
from examprep.models import TestSession

logger = logging.getLogger(__name__)


def generate_session_id(test_id: int, now: Optional[datetime] = None) -> str:
    """Opaque, unguessable session token: ``ses_<test>_<epoch ms>_<16 hex>``."""
    now = now or utc_now()
    return f"ses_{test_id}_{int(now.timestamp() * 1000)}_{secrets.token_hex(8)}"


def retention_deadline(started_at: datetime) -> datetime:
    return started_at + timedelta(hours=settings.SESSION_RETENTION_HOURS)


def find_open_session(
    db: Session, identity: SubjectIdentity, test_id: int
) -> Optional[TestSession]:
    """The subject's open (not completed) session for a test, if any."""
    return (
        db.query(TestSession)
        .filter(
            TestSession.subject_key == identity.key,
            TestSession.test_id == test_id,
            TestSession.completed.is_(False),
        )
        .first()
    )


def get_session_or_404(db: Session, session_id: str) -> TestSession:
    """
    Fetch a session by its token.

    Raises:
        NotFoundError: Unknown (or already purged) session
    """
    test_session = (
        db.query(TestSession).filter(TestSession.session_id == session_id).first()
    )
    if test_session is None:
        raise NotFoundError(ErrorMessages.SESSION_NOT_FOUND)
    return test_session


def verify_session_ownership(
    test_session: TestSession, identity: SubjectIdentity
) -> None:
    """
    Raises:
        ForbiddenError: If the session belongs to another subject
    """
    if test_session.subject_key != identity.key:
        raise ForbiddenError(ErrorMessages.SESSION_ACCESS_DENIED)


def close_session_if_open(db: Session, test_session: TestSession, **values: Any) -> bool:
    """
    Apply ``values`` to the session only while it is still open.

    ``completed=True`` is always part of the update. Runs inside the
    caller's transaction; nothing is committed here.

    Returns:
        True if this call closed the session, False if another request
        closed it first
    """
    values["completed"] = True
    result = db.execute(
        update(TestSession)
        .where(TestSession.id == test_session.id, TestSession.completed.is_(False))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def count_expired_sessions(db: Session, now: Optional[datetime] = None) -> int:
    now = now or utc_now()
    return db.scalar(
        select(func.count())
        .select_from(TestSession)
        .where(TestSession.expires_at <= now)
    )


def purge_expired_sessions(db: Session, now: Optional[datetime] = None) -> int:
    """
    Delete every session past its retention marker and commit.

    Idempotent; performance records are unaffected because they copy the
    session token instead of referencing the row.

    Returns:
        Number of sessions deleted
    """
    now = now or utc_now()
    result = db.execute(
        delete(TestSession)
        .where(TestSession.expires_at <= now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    purged = result.rowcount or 0
    if purged:
        logger.info(f"Purged {purged} expired test session(s)")
    return purged
