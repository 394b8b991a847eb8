"""Key-value session store shared with the host app.

Mirrors the extension's local storage: ``get``/``set``/``remove`` over
JSON values, plus change listeners that receive ``{key: StorageChange}``
after each committed write. Listeners run synchronously in write order.

INVARIANT: Listener failures are logged, never raised to the writer.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, insert, select, update

from pimsctl.infrastructure.database.schema import session_state

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageChange:
    """Old and new value of one key (None when absent)."""

    old_value: Any = None
    new_value: Any = None


Listener = Callable[[dict[str, StorageChange]], None]


class SessionStore:
    """JSON key-value store on the ``session_state`` table."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, keys: Iterable[str] | None = None) -> dict[str, Any]:
        """Return stored values for *keys* (all keys when None). Missing keys are omitted."""
        stmt = select(session_state.c.key, session_state.c.value)
        if keys is not None:
            stmt = stmt.where(session_state.c.key.in_(list(keys)))
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return {row.key: json.loads(row.value) for row in rows}

    def set(self, values: dict[str, Any]) -> dict[str, StorageChange]:
        """Write *values*, notify listeners of keys whose value changed."""
        now = datetime.now(UTC).isoformat()
        changes: dict[str, StorageChange] = {}
        with self._engine.begin() as conn:
            current = self._read(conn, values.keys())
            for key, value in values.items():
                encoded = json.dumps(value)
                if key in current:
                    if current[key] == value:
                        continue
                    conn.execute(
                        update(session_state)
                        .where(session_state.c.key == key)
                        .values(value=encoded, modified=now)
                    )
                else:
                    conn.execute(insert(session_state).values(key=key, value=encoded, modified=now))
                changes[key] = StorageChange(current.get(key), value)
        self._notify(changes)
        return changes

    def remove(self, keys: Iterable[str]) -> dict[str, StorageChange]:
        """Delete *keys*, notify listeners of keys that existed."""
        keys = list(keys)
        with self._engine.begin() as conn:
            current = self._read(conn, keys)
            if current:
                conn.execute(delete(session_state).where(session_state.c.key.in_(list(current))))
        changes = {key: StorageChange(value, None) for key, value in current.items()}
        self._notify(changes)
        return changes

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _read(conn: Any, keys: Iterable[str]) -> dict[str, Any]:
        rows = conn.execute(
            select(session_state.c.key, session_state.c.value).where(
                session_state.c.key.in_(list(keys))
            )
        ).fetchall()
        return {row.key: json.loads(row.value) for row in rows}

    def _notify(self, changes: dict[str, StorageChange]) -> None:
        if not changes:
            return
        for listener in list(self._listeners):
            try:
                listener(changes)
            except Exception:
                logger.warning("Session store listener failed", exc_info=True)
