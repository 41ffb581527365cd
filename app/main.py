"""
Main FastAPI application entry point.
"""
import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.api.v1.router import api_router
from app.core.cache import InMemoryTTLCache
from app.core.config import settings
from app.core.database import Base, SessionLocal, engine
from app.core.errors import AuditEngineError, AuditStateError, NotFoundError, ValidationError
from app.core.logging_config import setup_logging
from app.middleware.request_logging import RequestLoggingMiddleware

# Import all models so they register with Base.metadata
from app import models  # noqa: F401

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    logger.info(f"Starting up {settings.APP_NAME} API...")

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created/verified successfully")
    except SQLAlchemyError as e:
        logger.error(f"Failed to create database tables: {e}", exc_info=True)
        # Don't fail startup - let the health endpoint report the issue

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
            logger.info("Database connectivity verified")
        finally:
            db.close()
    except SQLAlchemyError as e:
        trace_id = str(uuid.uuid4())
        logger.error(f"[{trace_id}] Database connectivity test failed: {e}", exc_info=True)

    yield
    app.state.threshold_cache.clear()
    logger.info(f"Shutting down {settings.APP_NAME} API...")


app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="Food safety audit scoring, action plans and report data",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    redirect_slashes=False,
)

# Shared by every request; see app.api.deps
app.state.threshold_cache = InMemoryTTLCache()

# Request logging middleware (must be added before other middleware)
app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


ENGINE_ERROR_STATUS = (
    (NotFoundError, 404),
    (ValidationError, 422),
    (AuditStateError, 409),
)


@app.exception_handler(AuditEngineError)
async def engine_exception_handler(request: Request, exc: AuditEngineError):
    """Map engine errors that escaped an endpoint to HTTP status codes."""
    trace_id = getattr(request.state, "trace_id", str(uuid.uuid4()))
    status_code = 500
    for error_type, code in ENGINE_ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code = code
            break
    if status_code == 500:
        logger.error(f"[{trace_id}] Unhandled engine error: {type(exc).__name__}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "trace_id": trace_id, "error": type(exc).__name__},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors with trace_id."""
    trace_id = getattr(request.state, "trace_id", str(uuid.uuid4()))

    logger.error(
        f"[{trace_id}] Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=True
    )

    if isinstance(exc, SQLAlchemyError):
        error_detail = "Database error: check DATABASE_URL"
        error_type = "DatabaseError"
    elif isinstance(exc, HTTPException):
        raise exc
    else:
        error_detail = str(exc) if settings.DEBUG else "Internal Server Error"
        error_type = type(exc).__name__

    return JSONResponse(
        status_code=500,
        content={
            "detail": error_detail,
            "trace_id": trace_id,
            "error": error_type,
            "message": str(exc) if settings.DEBUG else "An unexpected error occurred",
        },
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": f"{settings.APP_NAME} API",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Liveness probe; no database access. Use /api/v1/health for readiness."""
    return {"status": "ok"}
