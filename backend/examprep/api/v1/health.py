"""
Health check and status endpoints.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from examprep.core import settings
from examprep.core.datetime_utils import utc_now
from examprep.models import get_db

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
def health_check(db: Session = Depends(get_db)):
    """
    Health check endpoint.

    Reports ``degraded`` instead of failing when the database is unreachable
    so load balancers can tell a live process from a broken dependency.
    """
    database = "ok"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning(f"Health check database probe failed: {e}")
        database = "unavailable"

    return {
        "status": "healthy" if database == "ok" else "degraded",
        "database": database,
        "timestamp": utc_now().isoformat(),
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@router.get("/ping")
def ping():
    """
    Simple ping endpoint for basic connectivity testing.
    """
    return {"message": "pong"}
