"""Sentry error tracking for the session engine.

Initialized once from the application lifespan. Every function is a no-op
until ``init_error_tracking`` succeeds, so request handling never depends
on Sentry being configured or reachable.
"""

import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from examprep.core.config import settings

logger = logging.getLogger(__name__)

_initialized = False


def _serialize_value(value: Any) -> Any:
    """Convert context values to JSON-compatible types for Sentry."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _serialize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_serialize_value(item) for item in value]
    return str(value)


def init_error_tracking() -> bool:
    """Initialize the Sentry SDK with FastAPI/Starlette integrations.

    Returns:
        True if Sentry is configured and ready, False if skipped (no DSN)
        or if initialization failed. Never raises.
    """
    global _initialized

    if not settings.SENTRY_DSN:
        logger.debug("Sentry initialization skipped (SENTRY_DSN not configured)")
        return False

    try:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENV,
            release=f"examprep@{settings.APP_VERSION}",
            traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
            integrations=[
                LoggingIntegration(level=None, event_level=None),
                FastApiIntegration(transaction_style="endpoint"),
                StarletteIntegration(transaction_style="endpoint"),
            ],
            send_default_pii=False,
        )
    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}", exc_info=True)
        return False

    _initialized = True
    logger.info(
        f"Sentry initialized for environment '{settings.ENV}' "
        f"with {settings.SENTRY_TRACES_SAMPLE_RATE * 100:.0f}% trace sampling"
    )
    return True


def capture_error(
    exception: BaseException,
    *,
    context: Optional[Dict[str, Any]] = None,
    tags: Optional[Dict[str, str]] = None,
    level: str = "error",
) -> Optional[str]:
    """Send an exception to Sentry with extra context and tags.

    Returns:
        Sentry event id, or None when error tracking is not initialized.
    """
    if not _initialized:
        return None

    with sentry_sdk.new_scope() as scope:
        if context:
            scope.set_context(
                "engine", {k: _serialize_value(v) for k, v in context.items()}
            )
        for key, value in (tags or {}).items():
            scope.set_tag(key, value)
        scope.level = level
        return sentry_sdk.capture_exception(exception)


def shutdown_error_tracking(timeout: float = 2.0) -> None:
    """Flush pending Sentry events before the process exits."""
    global _initialized

    if not _initialized:
        return
    client = sentry_sdk.get_client()
    client.flush(timeout=timeout)
    _initialized = False
