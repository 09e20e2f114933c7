"""Database engine and session management for the taxonomy store.

The services rely on SAVEPOINTs (``Session.begin_nested``) for race-safe
get-or-create, so SQLite connections are set up to emit BEGIN explicitly.
"""

import os
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

# Overridden by DATABASE_URL (a file path or a full SQLAlchemy URL)
DEFAULT_DB_PATH = Path.home() / ".wine_terroir" / "wine_terroir.db"


def get_database_url(db_path: Path | str | None = None) -> str:
    """
    Resolve the taxonomy database URL.

    Args:
        db_path: Explicit database file; takes precedence over DATABASE_URL.

    Returns:
        SQLAlchemy connection URL.
    """
    if db_path is None and "://" in os.environ.get("DATABASE_URL", ""):
        return os.environ["DATABASE_URL"]

    path = Path(db_path or os.environ.get("DATABASE_URL") or DEFAULT_DB_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


def _enable_sqlite_savepoints(engine: Engine) -> None:
    # pysqlite defers BEGIN, which breaks SAVEPOINT; emit BEGIN ourselves.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_db_engine(db_path: Path | str | None = None) -> Engine:
    """Create an engine for the taxonomy database."""
    url = get_database_url(db_path)
    if not url.startswith("sqlite"):
        return create_engine(url)

    engine = create_engine(url, connect_args={"check_same_thread": False})
    _enable_sqlite_savepoints(engine)
    return engine


# Process-wide engine and session factory, created on first use
_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def get_engine(db_path: Path | str | None = None) -> Engine:
    """Get or create the global database engine."""
    global _engine
    if _engine is None:
        _engine = create_db_engine(db_path)
    return _engine


def get_session_factory(db_path: Path | str | None = None) -> sessionmaker:
    """Get or create the global session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autoflush=False, bind=get_engine(db_path))
    return _SessionLocal


def reset_engine() -> None:
    """Dispose of the global engine so the next use re-reads DATABASE_URL."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


@contextmanager
def get_session(db_path: Path | str | None = None) -> Generator[Session, None, None]:
    """
    Open a session on the global engine.

    The intake and import services commit or roll back themselves; the
    session is only closed here.
    """
    session = get_session_factory(db_path)()
    try:
        yield session
    finally:
        session.close()


def init_db(db_path: Path | str | None = None) -> None:
    """Create the taxonomy tables if they do not exist."""
    from wine_terroir.db.models import Base

    Base.metadata.create_all(bind=get_engine(db_path))
