"""SQLite database engine and schema via SQLAlchemy Core."""

from pimsctl.infrastructure.database.engine import create_db_engine, init_database
from pimsctl.infrastructure.database.schema import dynamic_rules, metadata, session_state

__all__ = [
    "create_db_engine",
    "dynamic_rules",
    "init_database",
    "metadata",
    "session_state",
]
