"""
Database connection and session management.

Provides database access with proper connection pooling and session
lifecycle management. Components that write concurrently (the config
store, the per-source jobs) open their own short-lived sessions through
a ``SessionScope`` instead of sharing one.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Callable, ContextManager, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

DEFAULT_DATABASE_URL = "sqlite:///data/govwatch.db"

# A callable returning a transactional session context
SessionScope = Callable[[], ContextManager[Session]]


# =============================================================================
# Global Engine References
# =============================================================================

_sync_engine: Engine | None = None
_sync_session_factory: sessionmaker[Session] | None = None


# =============================================================================
# SQLite Configuration
# =============================================================================


def _configure_sqlite(engine: Engine, wal: bool = True) -> None:
    """Configure SQLite for better performance and reliability.

    Enables:
    - Foreign key enforcement
    - WAL mode for better concurrency (file databases only)
    - Synchronous mode for durability
    """
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if wal:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()


# =============================================================================
# Engine Creation
# =============================================================================


def create_db_engine(url: str, echo: bool = False, pool_size: int = 5) -> Engine:
    """Create a new engine (not registered globally).

    In-memory SQLite URLs share a single connection so every session sees
    the same database.
    """
    if url.startswith("sqlite:///") and ":memory:" not in url:
        db_path = url.replace("sqlite:///", "")
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    if url.startswith("sqlite"):
        in_memory = ":memory:" in url or url in ("sqlite://", "sqlite:///")
        options: dict = {"echo": echo, "connect_args": {"check_same_thread": False}}
        if in_memory:
            options["poolclass"] = StaticPool
        engine = create_engine(url, **options)
        _configure_sqlite(engine, wal=not in_memory)
        return engine

    return create_engine(
        url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=10,
        pool_pre_ping=True,
    )


def get_engine(
    url: str = DEFAULT_DATABASE_URL,
    echo: bool = False,
    pool_size: int = 5,
) -> Engine:
    """Get or create the process-wide database engine.

    Args:
        url: SQLAlchemy database URL
        echo: Whether to log SQL statements
        pool_size: Connection pool size (ignored for SQLite)

    Returns:
        SQLAlchemy Engine instance
    """
    global _sync_engine, _sync_session_factory

    if _sync_engine is not None:
        return _sync_engine

    _sync_engine = create_db_engine(url, echo=echo, pool_size=pool_size)
    _sync_session_factory = make_session_factory(_sync_engine)

    return _sync_engine


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


# =============================================================================
# Session Management
# =============================================================================


def scoped_sessions(factory: sessionmaker[Session]) -> SessionScope:
    """Build a ``SessionScope`` committing on success and rolling back on error."""

    @contextmanager
    def scope() -> Generator[Session, None, None]:
        session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return scope


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get a database session from the process-wide engine.

    Usage:
        with get_session() as session:
            session.execute(...)

    Yields:
        SQLAlchemy Session instance
    """
    if _sync_session_factory is None:
        get_engine()

    assert _sync_session_factory is not None
    with scoped_sessions(_sync_session_factory)() as session:
        yield session


# =============================================================================
# Database Initialization
# =============================================================================


def init_db(url: str = DEFAULT_DATABASE_URL, echo: bool = False) -> Engine:
    """Initialize the database schema.

    Creates all tables if they don't exist. For production use,
    prefer Alembic migrations.

    Args:
        url: Database URL
        echo: Whether to log SQL

    Returns:
        The process-wide engine
    """
    engine = get_engine(url, echo=echo)
    Base.metadata.create_all(bind=engine)
    return engine


def drop_db(url: str = DEFAULT_DATABASE_URL) -> None:
    """Drop all database tables.

    WARNING: This will delete all data!
    """
    engine = get_engine(url)
    Base.metadata.drop_all(bind=engine)
