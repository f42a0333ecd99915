"""
Database models package.
"""
from .base import Base, engine, SessionLocal, get_db
from .models import (
    PerformanceRecord,
    SessionStatus,
    SubmissionType,
    Test,
    TestSession,
)

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
    "PerformanceRecord",
    "SessionStatus",
    "SubmissionType",
    "Test",
    "TestSession",
]
