"""Declarative rule stores — the external request-modification table.

The store is a flat table keyed by rule id. It can be updated by id and
listed, but not queried "by domain", which is why callers derive ids
deterministically (see :mod:`pimsctl.domain.ids`).

``update_dynamic_rules`` semantics (shared by every store):

- removals run before additions; unknown ids in ``remove_rule_ids`` are
  ignored, so remove-then-add is idempotent;
- an addition whose id is still present after the removals is rejected;
- the update is all-or-nothing: if any addition is rejected nothing changes;
- exceeding ``max_rules`` is rejected as "store full".

Two implementations:

- :class:`InMemoryRuleStore`: process-local table (tests, embedding).
- :class:`SqlRuleStore`: the ``dynamic_rules`` table in the profile DB.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from sqlalchemy import delete, insert, select

from pimsctl.domain.errors import RuleStoreError
from pimsctl.domain.rules import DeclarativeRule
from pimsctl.infrastructure.database.schema import dynamic_rules

if TYPE_CHECKING:
    from sqlalchemy import Connection
    from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

DEFAULT_MAX_RULES = 5000


@runtime_checkable
class RuleStore(Protocol):
    """Capability interface of a declarative rule store."""

    supports_declarative: bool

    def update_dynamic_rules(
        self,
        *,
        remove_rule_ids: Iterable[int] = (),
        add_rules: Iterable[DeclarativeRule] = (),
    ) -> None: ...

    def get_dynamic_rules(self) -> list[DeclarativeRule]: ...


def _validate_additions(
    existing: set[int],
    remove_ids: set[int],
    additions: list[DeclarativeRule],
    max_rules: int,
) -> None:
    """Raise RuleStoreError if *additions* cannot be applied atomically."""
    remaining = existing - remove_ids
    seen: set[int] = set()
    for rule in additions:
        if rule.id < 1:
            msg = f"Rule id must be positive, got {rule.id}"
            raise RuleStoreError(msg, rule_ids=[rule.id])
        if rule.id in remaining or rule.id in seen:
            msg = f"Rule with id {rule.id} already exists"
            raise RuleStoreError(msg, rule_ids=[rule.id])
        if not rule.condition.url_filter:
            msg = f"Rule {rule.id} has an empty urlFilter"
            raise RuleStoreError(msg, rule_ids=[rule.id])
        seen.add(rule.id)
    total = len(remaining) + len(seen)
    if total > max_rules:
        msg = f"Rule store full ({total} > {max_rules})"
        raise RuleStoreError(msg, rule_ids=sorted(seen))


class InMemoryRuleStore:
    """Process-local rule table with the shared update semantics."""

    supports_declarative = True

    def __init__(self, *, max_rules: int = DEFAULT_MAX_RULES) -> None:
        self.max_rules = max_rules
        self._rules: dict[int, DeclarativeRule] = {}
        self._lock = threading.Lock()

    def update_dynamic_rules(
        self,
        *,
        remove_rule_ids: Iterable[int] = (),
        add_rules: Iterable[DeclarativeRule] = (),
    ) -> None:
        remove_ids = set(remove_rule_ids)
        additions = list(add_rules)
        with self._lock:
            _validate_additions(set(self._rules), remove_ids, additions, self.max_rules)
            for rule_id in remove_ids:
                self._rules.pop(rule_id, None)
            for rule in additions:
                self._rules[rule.id] = rule

    def get_dynamic_rules(self) -> list[DeclarativeRule]:
        with self._lock:
            return [self._rules[k] for k in sorted(self._rules)]


class SqlRuleStore:
    """Rule table persisted in the profile database.

    Each update runs in a single ``engine.begin()`` transaction, so a
    rejected addition rolls back the removals issued in the same call.
    """

    supports_declarative = True

    def __init__(self, engine: Engine, *, max_rules: int = DEFAULT_MAX_RULES) -> None:
        self._engine = engine
        self.max_rules = max_rules

    def update_dynamic_rules(
        self,
        *,
        remove_rule_ids: Iterable[int] = (),
        add_rules: Iterable[DeclarativeRule] = (),
    ) -> None:
        remove_ids = set(remove_rule_ids)
        additions = list(add_rules)
        with self._engine.begin() as conn:
            existing = set(conn.execute(select(dynamic_rules.c.id)).scalars())
            _validate_additions(existing, remove_ids, additions, self.max_rules)
            if remove_ids:
                conn.execute(delete(dynamic_rules).where(dynamic_rules.c.id.in_(remove_ids)))
            for rule in additions:
                self._insert(conn, rule)

    def get_dynamic_rules(self) -> list[DeclarativeRule]:
        with self._engine.connect() as conn:
            rows = conn.execute(select(dynamic_rules).order_by(dynamic_rules.c.id)).fetchall()
        return [
            DeclarativeRule.model_validate(
                {
                    "id": row.id,
                    "priority": row.priority,
                    "action": json.loads(row.action),
                    "condition": json.loads(row.condition),
                }
            )
            for row in rows
        ]

    @staticmethod
    def _insert(conn: Connection, rule: DeclarativeRule) -> None:
        payload = rule.to_payload()
        conn.execute(
            insert(dynamic_rules).values(
                id=rule.id,
                priority=rule.priority,
                action=json.dumps(payload["action"], separators=(",", ":")),
                condition=json.dumps(payload["condition"], separators=(",", ":")),
                created=datetime.now(UTC).isoformat(),
            )
        )
