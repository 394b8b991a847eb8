"""SQLAlchemy Core table definitions for the pimsctl profile database.

Two tables:

- ``session_state``: key-value hand-off with the host app (login flag,
  credential fields or pre-built token). Values are JSON-encoded.
- ``dynamic_rules``: the declarative rule store. ``action`` and
  ``condition`` hold the camelCase JSON payloads.

Nothing here records browsing history: a row exists only while its rule
is active, and derived values are overwritten on rotation.
"""

from __future__ import annotations

from sqlalchemy import Column, Integer, MetaData, Table, Text

metadata = MetaData()

session_state = Table(
    "session_state",
    metadata,
    Column("key", Text, primary_key=True),
    Column("value", Text, nullable=False),  # JSON
    Column("modified", Text, nullable=False),
)

dynamic_rules = Table(
    "dynamic_rules",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=False),
    Column("priority", Integer, nullable=False, default=1, server_default="1"),
    Column("action", Text, nullable=False),  # JSON
    Column("condition", Text, nullable=False),  # JSON
    Column("created", Text, nullable=False),
)
