"""
Database base configuration for SQLAlchemy models.

The engine is synchronous: endpoints are plain ``def`` functions that
FastAPI runs in its threadpool, and the purge sweep and scripts share the
same ``SessionLocal`` factory.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import QueuePool
from typing import Any, Dict, Generator
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

_DATABASE_URL_RAW = os.getenv("DATABASE_URL", "")
_is_production = os.getenv("ENV", "development").lower() == "production"
if not _DATABASE_URL_RAW:
    if _is_production:
        raise RuntimeError("DATABASE_URL is not set or is empty.")
    DATABASE_URL = "postgresql://localhost:5432/examprep_dev"
else:
    DATABASE_URL = _DATABASE_URL_RAW

# Echo SQL in development only
DEBUG = os.getenv("DEBUG", "True").lower() in ("true", "1", "yes")
SQL_ECHO = os.getenv("SQL_ECHO", "False").lower() in ("true", "1", "yes")

# Database connection pool settings
POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
POOL_MAX_OVERFLOW = int(os.getenv("DB_POOL_MAX_OVERFLOW", "20"))
POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))  # seconds
POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "3600"))  # seconds
POOL_PRE_PING = os.getenv("DB_POOL_PRE_PING", "True").lower() in (
    "true",
    "1",
    "yes",
)


def _engine_options(url: str) -> Dict[str, Any]:
    """Pool options for server databases; SQLite keeps SQLAlchemy's defaults."""
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "poolclass": QueuePool,
        "pool_size": POOL_SIZE,
        "max_overflow": POOL_MAX_OVERFLOW,
        "pool_timeout": POOL_TIMEOUT,
        "pool_recycle": POOL_RECYCLE,
        "pool_pre_ping": POOL_PRE_PING,
    }


engine = create_engine(
    DATABASE_URL,
    echo=DEBUG and SQL_ECHO,
    **_engine_options(DATABASE_URL),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """SQLAlchemy 2.0 declarative base class."""

    pass


def get_db() -> Generator[Session, None, None]:
    """
    Dependency function to get a database session.

    Rolls back on any exception raised by the endpoint so a failed
    submission never leaves a half-written transaction behind.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
