"""
Database engine and session management.

Concurrent source runs each hold their own session against the same
database. On SQLite the engine therefore enables WAL journaling and a busy
timeout, so a reader never blocks a committing writer and a second writer
waits instead of failing with "database is locked".
"""

import os
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

DEFAULT_DB_PATH = Path.home() / ".coffee_agent" / "coffee_agent.db"

# Milliseconds a connection waits on a locked SQLite database
SQLITE_BUSY_TIMEOUT_MS = 30_000

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def get_database_url(db_path: Path | str | None = None) -> str:
    """
    Resolve the database URL.

    Precedence: explicit path, then DATABASE_URL (a full SQLAlchemy URL or a
    bare SQLite file path), then ~/.coffee_agent/coffee_agent.db.
    """
    if db_path is None:
        configured = os.environ.get("DATABASE_URL")
        if configured and "://" in configured:
            return configured
        db_path = configured or DEFAULT_DB_PATH

    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


def _tune_sqlite(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    cursor.close()


def create_db_engine(db_path: Path | str | None = None, echo: bool = False) -> Engine:
    """
    Create an engine for the catalog database.

    Args:
        db_path: SQLite file to use instead of the configured database.
        echo: Log every SQL statement.
    """
    url = get_database_url(db_path)
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo)

    engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    event.listen(engine, "connect", _tune_sqlite)
    return engine


def get_engine(db_path: Path | str | None = None, echo: bool = False) -> Engine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_db_engine(db_path, echo)
    return _engine


def get_session_factory(db_path: Path | str | None = None) -> sessionmaker[Session]:
    """Return the process-wide session factory bound to the shared engine."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(db_path), autocommit=False, autoflush=False)
    return _session_factory


def reset_engine() -> None:
    """Dispose the shared engine so the next call re-reads the configuration."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


@contextmanager
def get_session(db_path: Path | str | None = None) -> Generator[Session, None, None]:
    """
    Open a session on the shared engine and close it on exit.

    Writes are committed explicitly by the repositories; nothing is
    committed on exit.
    """
    session = get_session_factory(db_path)()
    try:
        yield session
    finally:
        session.close()


def init_db(db_path: Path | str | None = None) -> None:
    """Create any missing tables. Existing tables are left as they are."""
    from coffee_agent.db.models import Base

    Base.metadata.create_all(bind=get_engine(db_path))
