"""
API v1 router.
"""
from fastapi import APIRouter

from app.api.v1.endpoints import audits, health, reports, thresholds

api_router = APIRouter()

# Health check endpoint (no prefix, so it's /api/v1/health)
api_router.include_router(health.router, tags=["health"])

api_router.include_router(audits.router, prefix="/audits", tags=["audits"])
api_router.include_router(reports.router, prefix="/reports", tags=["reports"])
api_router.include_router(thresholds.router, prefix="/thresholds", tags=["thresholds"])
