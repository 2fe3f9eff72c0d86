"""Database session management."""
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from where2meet.backend.core.config import settings
import os

SQLITE_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def enable_sqlite_foreign_keys(engine) -> None:
    """Make SQLite honour ON DELETE CASCADE."""
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_engine(database_url: str) -> Engine:
    """
    Create an engine for the given URL.

    In-memory SQLite lives on a single connection, so it gets StaticPool.
    A SQLite file gets the default pool: one connection per session, so a
    session closing never rolls back another session's transaction.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=False, pool_pre_ping=True)

    if database_url in SQLITE_MEMORY_URLS:
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False
        )
    else:
        # Ensure directory exists for SQLite
        db_path = database_url.replace("sqlite:///", "")
        os.makedirs(os.path.dirname(db_path) if os.path.dirname(db_path) else ".", exist_ok=True)
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=False
        )

    enable_sqlite_foreign_keys(engine)
    return engine


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """Dependency for FastAPI to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """Dependency for work that outlives the request (background tasks)."""
    return SessionLocal
