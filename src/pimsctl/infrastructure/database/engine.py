"""Database engine setup for SQLite with WAL mode.

The profile database lives at ``{profile_root}/.pimsctl/pimsctl.db``.
SQLAlchemy Core (not ORM) is used: the tables are two flat stores with
no relationships worth mapping.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from pimsctl.infrastructure.database.schema import metadata

PROFILE_DIRNAME = ".pimsctl"
DB_FILENAME = "pimsctl.db"


def create_db_engine(db_path: Path) -> Engine:
    """Create a SQLite engine with WAL mode enabled."""
    engine = create_engine(f"sqlite:///{db_path}", echo=False)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return engine


def init_database(profile_root: Path) -> Engine:
    """Initialize the profile database at ``{profile_root}/.pimsctl/pimsctl.db``.

    Idempotent — safe to call on an existing profile.
    """
    profile_dir = profile_root / PROFILE_DIRNAME
    profile_dir.mkdir(parents=True, exist_ok=True)
    (profile_dir / "plugins").mkdir(exist_ok=True)

    engine = create_db_engine(profile_dir / DB_FILENAME)
    metadata.create_all(engine)
    return engine
