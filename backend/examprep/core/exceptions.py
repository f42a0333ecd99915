"""
Domain exceptions raised by the session engine.

The lifecycle controller and the record service raise these instead of
``HTTPException`` so they can run outside a request (scripts, background
sweeps, tests). ``examprep.main`` registers a handler that maps each one to
its HTTP status and a ``{"detail": ...}`` body.
"""

from fastapi import status


class SessionEngineError(Exception):
    """Base class for errors that carry a user-facing message."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(SessionEngineError):
    """Unknown test, session or record."""

    status_code = status.HTTP_404_NOT_FOUND


class GoneError(SessionEngineError):
    """Test exists but is no longer active."""

    status_code = status.HTTP_410_GONE


class ConflictError(SessionEngineError):
    """Operation lost a race or targets a session that is already closed."""

    status_code = status.HTTP_409_CONFLICT


class ForbiddenError(SessionEngineError):
    """Caller does not own the session or record."""

    status_code = status.HTTP_403_FORBIDDEN


class InvalidScoringWeightsError(ValueError):
    """
    A test definition carries weights that break the scoring contract.

    Raised for bad data in the test definition store, never for client
    input; handled by the generic 500 handler.
    """


class ImmutableRecordError(RuntimeError):
    """An attempt was made to change a performance record outside its review."""
