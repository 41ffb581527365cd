"""
Health check endpoint for monitoring and diagnostics.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
def health_check(request: Request, db: Session = Depends(get_db)):
    """
    Verify the API is running and the audit database answers SELECT 1.

    Returns 503 when the database is unreachable.
    """
    try:
        db.execute(text("SELECT 1")).fetchone()
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection failed",
        )

    cache = getattr(request.app.state, "threshold_cache", None)
    return {
        "ok": True,
        "db": True,
        "environment": settings.APP_ENV,
        "evidence_backend": settings.EVIDENCE_BACKEND,
        "cached_thresholds": len(cache) if cache is not None else 0,
    }
