"""
Application configuration settings.

Central configuration module using Pydantic BaseSettings with environment variable support.
Loads from .env file and environment variables.
"""
import json
import os
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Union
from urllib.parse import quote_plus

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file if it exists (python-dotenv)
env_path = Path(".env")
if env_path.exists():
    load_dotenv(dotenv_path=env_path)


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # App settings
    APP_NAME: str = "Food Safety Auditor"
    APP_ENV: str = Field(default="local")
    DEBUG: bool = Field(default=False)

    # Database settings - generic connection string (highest priority)
    DATABASE_URL: Optional[str] = Field(
        default=None,
        description="Database connection URL",
    )

    # Postgres plugin raw vars (PG*)
    PGUSER: Optional[str] = Field(default=None)
    PGPASSWORD: Optional[str] = Field(default=None)
    PGHOST: Optional[str] = Field(default=None)
    PGPORT: Optional[str] = Field(default=None)
    PGDATABASE: Optional[str] = Field(default=None)

    # Local docker-compose Postgres settings
    POSTGRES_USER: Optional[str] = Field(default=None)
    POSTGRES_PASSWORD: Optional[str] = Field(default=None)
    POSTGRES_HOST: Optional[str] = Field(default=None)
    POSTGRES_PORT: str = Field(default="5432")
    POSTGRES_DB: str = Field(default="food_safety_auditor")

    @property
    def sqlalchemy_database_uri(self) -> str:
        """
        Build SQLAlchemy database URI with priority:
        1. DATABASE_URL (full connection string)
        2. PG* vars
        3. Local docker-compose Postgres (POSTGRES_*)
        4. SQLite (local development)
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        if self.PGUSER and self.PGHOST and self.PGDATABASE:
            password = quote_plus(self.PGPASSWORD or "")
            port = self.PGPORT or "5432"
            return f"postgresql+psycopg2://{self.PGUSER}:{password}@{self.PGHOST}:{port}/{self.PGDATABASE}"

        if os.getenv("POSTGRES_HOST") and self.POSTGRES_USER and self.POSTGRES_PASSWORD:
            password = quote_plus(self.POSTGRES_PASSWORD)
            return (
                f"postgresql+psycopg2://"
                f"{self.POSTGRES_USER}:{password}@"
                f"{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )

        return "sqlite:///./food_safety_auditor.db"

    # CORS settings
    CORS_ORIGINS: Union[str, List[str]] = Field(
        default='["http://localhost:3000", "http://localhost:8000"]',
    )

    @field_validator("CORS_ORIGINS")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from string or list."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # Logging
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    LOG_DIR: str = Field(default="logs")

    # API Authentication
    API_KEY: Optional[str] = Field(
        default=None,
        description="Static admin API key. Leave empty to disable authentication.",
    )
    # Optional lower-privilege keys (only checked when API_KEY is set)
    AUDITOR_API_KEY: Optional[str] = Field(default=None)
    VIEWER_API_KEY: Optional[str] = Field(default=None)

    # Pass/fail thresholds used when the configuration store has no value or is unreachable
    DEFAULT_OVERALL_THRESHOLD: float = Field(default=83.0, ge=0, le=100)
    DEFAULT_SECTION_THRESHOLD: float = Field(default=83.0, ge=0, le=100)
    DEFAULT_CATEGORY_THRESHOLD: float = Field(default=83.0, ge=0, le=100)
    THRESHOLD_CACHE_TTL_SECONDS: int = Field(default=300, ge=0)

    # Outbound fetches (configuration store, evidence store)
    CONFIG_FETCH_RETRIES: int = Field(default=2, ge=0)
    EVIDENCE_FETCH_RETRIES: int = Field(default=2, ge=0)
    RETRY_BASE_DELAY: float = Field(default=0.2, ge=0)
    EVIDENCE_MAX_CONCURRENCY: int = Field(default=5, ge=1, le=32)

    # Evidence store: "sql" reads pictures from the audit database, "http" downloads them
    EVIDENCE_BACKEND: str = Field(default="sql")
    EVIDENCE_BASE_URL: Optional[str] = Field(default=None)
    EVIDENCE_DIR: str = Field(default="./evidence")
    EVIDENCE_HTTP_TIMEOUT: float = Field(default=10.0, gt=0)

    # Audit numbering and scoring policy
    DEFAULT_DOCUMENT_PREFIX: str = Field(default="FSA")
    BLANK_CHOICE_POLICY: str = Field(
        default="worst",
        description="How an unanswered item scores: 'worst' (0 points) or 'exclude' (like NA)",
    )

    # Cycle labels shown in the historical trend table
    TREND_CYCLES: Union[str, List[str]] = Field(default='["C1", "C2", "C3", "C4", "C5", "C6"]')

    @field_validator("TREND_CYCLES")
    @classmethod
    def parse_trend_cycles(cls, v):
        """Parse TREND_CYCLES from JSON array or comma-separated string."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [cycle.strip() for cycle in v.split(",") if cycle.strip()]
        return v

    @field_validator("BLANK_CHOICE_POLICY", "EVIDENCE_BACKEND")
    @classmethod
    def lower_case(cls, v: str) -> str:
        return v.strip().lower()

    def is_api_key_configured(self) -> bool:
        """Check if a static API key is configured and not empty."""
        return self.API_KEY is not None and self.API_KEY.strip() != ""


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
