"""
API v1 router combining all v1 endpoints.
"""
from fastapi import APIRouter
from examprep.api.v1 import health, records, sessions

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(sessions.router, prefix="/sessions", tags=["sessions"])
api_router.include_router(records.router, prefix="/records", tags=["records"])
