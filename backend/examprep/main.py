"""
Main FastAPI application.
"""
import asyncio
import contextlib
import logging
import os
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from examprep.api.v1.api import api_router
from examprep.core.background_tasks import run_session_purge_loop
from examprep.core.config import settings
from examprep.core.exceptions import SessionEngineError
from examprep.core.logging_config import setup_logging
from examprep.middleware import RequestLoggingMiddleware
from examprep.observability import (
    capture_error,
    init_error_tracking,
    shutdown_error_tracking,
)

# Initialize logging configuration at startup
setup_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan event handler.

    - On startup: initializes Sentry and starts the expired-session sweep
    - On shutdown: stops the sweep and flushes pending Sentry events
    """
    init_error_tracking()

    purge_task = None
    if settings.SESSION_PURGE_INTERVAL_SECONDS > 0:
        purge_task = asyncio.create_task(
            run_session_purge_loop(settings.SESSION_PURGE_INTERVAL_SECONDS)
        )

    yield

    if purge_task is not None:
        purge_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await purge_task
        logger.info("Expired-session sweep stopped")

    shutdown_error_tracking()


# OpenAPI tags metadata
tags_metadata = [
    {
        "name": "health",
        "description": "Health check endpoints for monitoring application status",
    },
    {
        "name": "sessions",
        "description": "Start, resume, submit and end timed test attempts",
    },
    {
        "name": "records",
        "description": "Performance records of submitted attempts and their reviews",
    },
]


def _request_context(request: Request) -> dict:
    return {"path": str(request.url.path), "method": request.method}


def create_application() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan,
        description=(
            "**ExamPrep Session Engine** - timed multiple-choice test attempts.\n\n"
            "* Start or resume a bounded-duration attempt\n"
            "* Submit answers for weighted scoring with negative marking\n"
            "* Review immutable performance records\n\n"
            "## Authentication\n\n"
            "All session and record endpoints require a JWT Bearer token issued "
            "by the authentication service."
        ),
        docs_url=f"{settings.API_V1_PREFIX}/docs",
        redoc_url=f"{settings.API_V1_PREFIX}/redoc",
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        openapi_tags=tags_metadata,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )
    app.add_middleware(RequestLoggingMiddleware, slow_request_threshold=1.0)

    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    @app.exception_handler(SessionEngineError)
    async def session_engine_exception_handler(
        request: Request, exc: SessionEngineError
    ):
        """
        Map domain errors (not found, gone, conflict, forbidden) to HTTP.

        These are expected outcomes, so they are logged but not sent to Sentry.
        """
        logger.info(
            f"{exc.__class__.__name__}: {exc.detail}",
            extra={**_request_context(request), "status_code": exc.status_code},
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """
        Handle HTTP exceptions, reporting server-side ones to Sentry.
        """
        if exc.status_code >= 500:
            capture_error(
                exc,
                context={**_request_context(request), "status_code": exc.status_code},
                tags={"error_type": "HTTPException"},
            )

        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        """
        Handle request validation errors.
        """
        errors = [
            {
                "loc": list(error.get("loc", [])),
                "msg": str(error.get("msg", "")),
                "type": str(error.get("type", "")),
            }
            for error in exc.errors()
        ]
        logger.info(
            f"Request validation failed: {len(errors)} error(s)",
            extra=_request_context(request),
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": errors},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """
        Handle unexpected exceptions.

        Generates a unique error_id for each exception; it is returned to the
        client and logged with the full traceback so support can find it.
        """
        error_id = str(uuid.uuid4())

        logger.exception(
            f"Unhandled exception [error_id={error_id}]: {exc}",
            extra={"error_id": error_id},
        )
        capture_error(
            exc,
            context={**_request_context(request), "error_id": error_id},
            tags={"error_type": exc.__class__.__name__},
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal server error",
                "error_id": error_id,
            },
        )

    return app


app = create_application()


@app.get("/")
def root():
    """
    Root endpoint.
    """
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": f"{settings.API_V1_PREFIX}/docs",
    }


def run() -> None:
    """Serve the application with uvicorn (``examprep-serve`` or ``python -m examprep.main``)."""
    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=port)


if __name__ == "__main__":
    run()
