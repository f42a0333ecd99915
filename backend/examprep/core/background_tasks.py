"""
Background work that runs inside the API process.

Currently one job: the periodic sweep that deletes sessions past their
retention marker. Failures are logged and reported, then the loop carries
on; nothing here may take the application down.

Usage from the lifespan::

    task = asyncio.create_task(run_session_purge_loop(interval_seconds=3600))
    ...
    task.cancel()
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from starlette.concurrency import run_in_threadpool

from examprep.core.session_store import purge_expired_sessions
from examprep.models import SessionLocal
from examprep.observability import capture_error

logger = logging.getLogger(__name__)


async def safe_background_task(
    func: Callable[..., Awaitable[Any]],
    *args: Any,
    **kwargs: Any,
) -> None:
    """Execute an async function, catching and logging any exception.

    No retries are attempted; background tasks are fire-and-forget.
    """
    name = getattr(func, "__name__", repr(func))
    try:
        await func(*args, **kwargs)
    except Exception as e:
        logger.exception("Background task '%s' failed", name)
        capture_error(e, tags={"error_type": "BackgroundTaskFailure", "task": name})


def purge_expired_sessions_job() -> int:
    """Run one purge with its own database session."""
    db = SessionLocal()
    try:
        return purge_expired_sessions(db)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


async def purge_once() -> None:
    await run_in_threadpool(purge_expired_sessions_job)


async def run_session_purge_loop(interval_seconds: int) -> None:
    """Purge expired sessions every ``interval_seconds`` until cancelled."""
    logger.info(f"Expired-session sweep running every {interval_seconds}s")
    while True:
        await asyncio.sleep(interval_seconds)
        await safe_background_task(purge_once)
