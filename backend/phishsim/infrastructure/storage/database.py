"""
Database Connection and Session Management
"""
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from phishsim.core.config import get_settings
from phishsim.infrastructure.storage.models import Base

# Seconds a SQLite writer waits for the file lock. Must outlast
# dispatch.timeout_seconds: campaign creation holds the lock until the engine answers.
DEFAULT_SQLITE_LOCK_TIMEOUT = 60.0

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def sqlite_lock_timeout(dispatch_timeout: float) -> float:
    return max(DEFAULT_SQLITE_LOCK_TIMEOUT, dispatch_timeout * 2)


def build_engine(database_url: str, lock_timeout: float = DEFAULT_SQLITE_LOCK_TIMEOUT) -> Engine:
    """
    Create an engine for the given URL.

    In-memory SQLite shares one connection so every session sees the same data.
    """
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": lock_timeout}
        if ":memory:" in database_url or database_url == "sqlite://":
            return create_engine(database_url, echo=False, connect_args=connect_args, poolclass=StaticPool)
        return create_engine(database_url, echo=False, connect_args=connect_args)
    return create_engine(database_url, echo=False, pool_pre_ping=True)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(database_url: Optional[str] = None,
            lock_timeout: float = DEFAULT_SQLITE_LOCK_TIMEOUT) -> sessionmaker:
    """Create tables and install the process-wide session factory."""
    global _engine, _session_factory
    _engine = build_engine(database_url or get_settings().database_url, lock_timeout)
    Base.metadata.create_all(_engine)
    _session_factory = build_session_factory(_engine)
    return _session_factory


def get_session_factory() -> sessionmaker:
    if _session_factory is None:
        return init_db()
    return _session_factory


def get_db_session() -> Iterator[Session]:
    """
    Get database session for FastAPI dependency injection

    Usage:
        @app.get("/campaigns")
        def list_campaigns(db: Session = Depends(get_db_session)):
            return db.query(Campaign).all()
    """
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()
