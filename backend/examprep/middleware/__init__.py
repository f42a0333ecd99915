"""
Middleware package for the FastAPI application.
"""
from examprep.middleware.request_logging import RequestLoggingMiddleware

__all__ = ["RequestLoggingMiddleware"]
