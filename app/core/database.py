"""
Database engine and session management.

The audit store, configuration store and SQL evidence store all read
through sessions created here; endpoints get one session per request
from get_db.
"""
from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from app.core.config import get_settings

settings = get_settings()

database_url = settings.sqlalchemy_database_uri
is_sqlite = database_url.startswith("sqlite")

engine = create_engine(
    database_url,
    pool_pre_ping=not is_sqlite,
    echo=settings.DEBUG,
    connect_args={"check_same_thread": False} if is_sqlite else {},
)

if is_sqlite:
    # Responses, pictures and score snapshots cascade with their audit
    @event.listens_for(engine, "connect")
    def enable_sqlite_foreign_keys(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Declarative base of the audit models."""


def get_db():
    """Request-scoped database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
