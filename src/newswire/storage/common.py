"""SQLite connection policy shared by the repository and migrations."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool
from sqlmodel import create_engine

DEFAULT_BUSY_TIMEOUT_MS = 5000
# Applied to every connection the engine opens.
_PRAGMAS = (
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",
    "PRAGMA foreign_keys = ON",
)


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def sqlite_url(db_path: Path) -> str:
    return f"sqlite:///{db_path}"


def ensure_parent_dir(db_path: Path) -> None:
    """Create the database directory when it does not exist yet."""

    if db_path.parent != Path():
        db_path.parent.mkdir(parents=True, exist_ok=True)


def build_sqlite_engine(*, db_path: Path, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> Engine:
    """SQLAlchemy engine whose every connection gets the wire SQLite pragmas."""

    ensure_parent_dir(db_path)
    engine = create_engine(
        sqlite_url(db_path),
        connect_args={
            # Engine calls run in the API threadpool.
            "check_same_thread": False,
            "timeout": max(1.0, busy_timeout_ms / 1000.0),
        },
        poolclass=NullPool,
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: sqlite3.Connection, _record: object) -> None:
        apply_sqlite_pragmas(dbapi_connection, busy_timeout_ms=busy_timeout_ms)

    return engine


def apply_sqlite_pragmas(connection: sqlite3.Connection, *, busy_timeout_ms: int) -> None:
    cursor = connection.cursor()
    try:
        cursor.execute(f"PRAGMA busy_timeout = {max(1, busy_timeout_ms)}")
        for pragma in _PRAGMAS:
            cursor.execute(pragma)
    finally:
        cursor.close()
