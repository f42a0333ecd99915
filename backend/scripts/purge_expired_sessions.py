#!/usr/bin/env python3
"""
Purge expired test sessions.

Deletes every row in ``test_sessions`` whose retention marker
(``expires_at``) has passed. Performance records are never touched.
The API process runs the same sweep periodically; this script is for cron
deployments that disable it (SESSION_PURGE_INTERVAL_SECONDS=0).

Usage:
    DATABASE_URL="postgresql://..." python scripts/purge_expired_sessions.py

    # Count what would be deleted without deleting
    DATABASE_URL="postgresql://..." python scripts/purge_expired_sessions.py --dry-run
"""

import argparse
import logging
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from examprep.core.datetime_utils import utc_now  # noqa: E402
from examprep.core.logging_config import setup_logging  # noqa: E402
from examprep.core.session_store import (  # noqa: E402
    count_expired_sessions,
    purge_expired_sessions,
)
from examprep.models import SessionLocal  # noqa: E402

logger = logging.getLogger("examprep.scripts.purge_expired_sessions")


def main() -> int:
    parser = argparse.ArgumentParser(description="Delete expired test sessions")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report how many sessions would be deleted without deleting them",
    )
    args = parser.parse_args()

    setup_logging()
    now = utc_now()
    db = SessionLocal()
    try:
        if args.dry_run:
            count = count_expired_sessions(db, now)
            logger.info(f"[DRY RUN] {count} expired session(s) would be purged")
            return 0

        purged = purge_expired_sessions(db, now)
        logger.info(f"Purged {purged} expired session(s)")
        return 0
    except Exception:
        db.rollback()
        logger.exception("Expired-session purge failed")
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
