"""Reconciler — keeps the rule store in step with observed domains and login state.

Inbound events:

- :meth:`Reconciler.on_domain_observed` — a page on *domain* was visited.
- :meth:`Reconciler.on_login_state_changed` — the login flag flipped.
- :meth:`Reconciler.on_credential_changed` — the identity was replaced.
- :meth:`Reconciler.sync_session` — a full session snapshot arrived (the
  storage watcher diffs it against the current one and raises the events above).

All state lives in an explicit :class:`ReconcilerState`; nothing is module
global, so several reconcilers (profiles, tests) run side by side.

INVARIANT: ``state.known_domains`` equals the set of domains with an
active rule on every configured channel. It is empty after logout.
INVARIANT: Rule installs are remove-by-id-then-add, in one store call.
INVARIANT: Failures never retry automatically. The domain stays untracked
and the next observation of it tries again.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pimsctl.config.models import RulesConfig, TaggingConfig
from pimsctl.domain.credentials import Credential, SessionState
from pimsctl.domain.errors import MissingCredential, RuleStoreError
from pimsctl.domain.ids import id_ceiling, rule_id
from pimsctl.domain.rules import DeclarativeRule, TaggingRule
from pimsctl.domain.urls import normalize_domain

if TYPE_CHECKING:
    from pimsctl.infrastructure.rule_store import RuleStore
    from pimsctl.plugins.event_bus import EventBus
    from pimsctl.services.resolver import TokenResolver

logger = logging.getLogger(__name__)

MAX_PENDING_DOMAINS = 1000


class InstallOutcome(StrEnum):
    """What happened to one domain observation."""

    INSTALLED = "installed"
    ALREADY_KNOWN = "already_known"
    SKIPPED = "skipped"  # logged out or no usable credential
    FAILED = "failed"  # rule store rejected an add


@dataclass(frozen=True)
class RemovalReport:
    """Best-effort result of a bulk rule removal."""

    removed: tuple[int, ...] = ()
    failed: tuple[int, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass(frozen=True)
class ReconcileReport:
    """Effects of one login, logout, or rotation event."""

    outcomes: dict[str, InstallOutcome] = field(default_factory=dict)
    removal: RemovalReport | None = None

    @property
    def installed(self) -> list[str]:
        return [d for d, o in self.outcomes.items() if o is InstallOutcome.INSTALLED]

    @property
    def failed(self) -> list[str]:
        return [d for d, o in self.outcomes.items() if o is InstallOutcome.FAILED]


@dataclass
class ReconcilerState:
    """Mutable reconciler state, owned by exactly one :class:`Reconciler`.

    Attributes:
        known_domains: Domains currently carrying an active rule.
        owners: Rule id → domain that last wrote it (collisions are last-write-wins).
        pending: Domains seen but not tagged (observed while logged out,
            or cleared by logout). Replayed on the next login. In memory only.
        session: The session snapshot the rules were built from.
        rules_day: Day epoch the installed values were derived for (None = unknown).
    """

    known_domains: set[str] = field(default_factory=set)
    owners: dict[int, str] = field(default_factory=dict)
    pending: OrderedDict[str, None] = field(default_factory=OrderedDict)
    session: SessionState = field(default_factory=SessionState)
    rules_day: int | None = None


class Reconciler:
    """Drives the rule store from domain, login, and credential events.

    Every public method takes the reconciler lock, so direct calls are
    serialized even without the event queue.
    """

    def __init__(
        self,
        store: RuleStore,
        resolver: TokenResolver,
        *,
        tagging: TaggingConfig | None = None,
        rules: RulesConfig | None = None,
        event_bus: EventBus | None = None,
        state: ReconcilerState | None = None,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._tagging = tagging or TaggingConfig()
        self._rules = rules or RulesConfig()
        self._event_bus = event_bus
        self._state = state or ReconcilerState()
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def known_domains(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._state.known_domains)

    @property
    def pending_domains(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._state.pending)

    @property
    def session(self) -> SessionState:
        return self._state.session

    @property
    def rules_day(self) -> int | None:
        return self._state.rules_day

    def rule_ids_for(self, domain: str) -> list[int]:
        """Rule ids *domain* occupies across the configured channels."""
        return [
            rule_id(domain, channel, id_space=self._rules.id_space)
            for channel in self._tagging.channels
        ]

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on_domain_observed(self, domain: str) -> InstallOutcome:
        """Install rules for *domain* unless it is already known."""
        domain = normalize_domain(domain)
        if not domain:
            return InstallOutcome.SKIPPED
        with self._lock:
            self.refresh_if_stale()
            if domain in self._state.known_domains:
                return InstallOutcome.ALREADY_KNOWN
            if not self._state.session.logged_in:
                self._remember(domain)
                logger.debug("Not logged in, deferring %s", domain)
                return InstallOutcome.SKIPPED
            return self._install(domain)

    def on_login_state_changed(
        self, logged_in: bool, open_domains: Iterable[str] = ()
    ) -> ReconcileReport:
        """Flip the login flag.

        Logging in tags *open_domains* plus every pending domain. Logging
        out removes every rule and empties the known set.
        """
        with self._lock:
            session = self._state.session
            if not logged_in:
                self._state.session = session.model_copy(update={"logged_in": False})
                return ReconcileReport(removal=self._clear_all())
            self._state.session = session.model_copy(update={"logged_in": True})
            return ReconcileReport(outcomes=self._login(open_domains))

    def on_credential_changed(self, credential: Credential | str | None) -> ReconcileReport:
        """Replace the identity.

        *credential* is a :class:`Credential` (derived deployment), a
        pre-built tagging value, or None (logout). Rotation removes every
        rule and re-tags the previously known domains with the new identity.
        Without a usable previous identity this is a plain login.
        """
        with self._lock:
            session = self._state.session
            if credential is None:
                self._state.session = session.model_copy(
                    update={"logged_in": False, "credential": None, "prebuilt_token": None}
                )
                return ReconcileReport(removal=self._clear_all())
            if isinstance(credential, Credential):
                update: dict[str, Any] = {"credential": credential, "prebuilt_token": None}
            else:
                update = {"credential": None, "prebuilt_token": credential.strip() or None}
            update["logged_in"] = True
            new = session.model_copy(update=update)
            if new == session:
                return ReconcileReport()
            if session.is_active:
                return self._rotate(new)
            self._state.session = new
            return ReconcileReport(outcomes=self._login(()))

    def sync_session(self, new: SessionState) -> ReconcileReport:
        """Move to session snapshot *new*, raising the implied events."""
        with self._lock:
            old = self._state.session
            if not new.logged_in:
                removal = None
                if old.logged_in or self._state.known_domains:
                    removal = self._clear_all()
                self._state.session = new
                return ReconcileReport(removal=removal)

            identity_changed = (new.credential, new.prebuilt_token) != (
                old.credential,
                old.prebuilt_token,
            )
            if old.logged_in and old.is_active and identity_changed:
                return self._rotate(new)
            self._state.session = new
            if not old.logged_in or identity_changed:
                return ReconcileReport(outcomes=self._login(()))
            return ReconcileReport()

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def hydrate(self) -> int:
        """Rebuild known domains from rules already in the store.

        Used when a new process attaches to a persisted store. The day
        those rules were built for is unknown, so the next event refreshes them.
        """
        ceiling = id_ceiling(self._rules.id_space)
        with self._lock:
            for rule in self._store.get_dynamic_rules():
                domains = rule.condition.request_domains
                if not domains or not 1 <= rule.id <= ceiling:
                    continue
                self._state.owners[rule.id] = domains[0]
                self._state.known_domains.add(domains[0])
            self._state.rules_day = None
            return len(self._state.known_domains)

    def refresh_if_stale(self) -> bool:
        """Rebuild every rule when the day has moved past ``rules_day``.

        There is no timer: this runs at the start of each event, so a rule
        built on day N serves day N's value until the next event on day N+1.
        Returns True when a rebuild happened.
        """
        if not self._rules.refresh_on_day_change:
            return False
        with self._lock:
            session = self._state.session
            if not self._state.known_domains or not session.is_active:
                return False
            today = self._resolver.current_day()
            if self._state.rules_day == today:
                return False
            if session.credential is None:
                # Pre-built values do not rotate.
                self._state.rules_day = today
                return False
            logger.info(
                "Rebuilding rules for day %d",
                today,
                extra={"domains": len(self._state.known_domains)},
            )
            for domain in sorted(self._state.known_domains):
                self._install(domain)
            return True

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _login(self, open_domains: Iterable[str]) -> dict[str, InstallOutcome]:
        self.refresh_if_stale()
        candidates = [normalize_domain(d) for d in open_domains]
        candidates.extend(self._state.pending)
        outcomes: dict[str, InstallOutcome] = {}
        for domain in dict.fromkeys(d for d in candidates if d):
            if domain in self._state.known_domains:
                outcomes[domain] = InstallOutcome.ALREADY_KNOWN
            else:
                outcomes[domain] = self._install(domain)
        return outcomes

    def _rotate(self, new: SessionState) -> ReconcileReport:
        previous = sorted(self._state.known_domains)
        logger.info("Credential rotated", extra={"domains": len(previous)})
        removal = self._clear_all()
        self._state.session = new
        outcomes = {domain: self._install(domain) for domain in previous}
        return ReconcileReport(outcomes=outcomes, removal=removal)

    def _install(self, domain: str) -> InstallOutcome:
        try:
            value, day = self._resolver.resolve_with_day(self._state.session, domain)
        except MissingCredential as exc:
            logger.debug("Skipping %s: %s", domain, exc)
            self._forget(domain)
            self._remember(domain)
            return InstallOutcome.SKIPPED

        installed: list[TaggingRule] = []
        for channel in self._tagging.channels:
            rule = TaggingRule(
                id=rule_id(domain, channel, id_space=self._rules.id_space),
                domain=domain,
                channel=channel,
                value=value,
            )
            try:
                self._store.update_dynamic_rules(
                    remove_rule_ids=[rule.id], add_rules=[self._render(rule)]
                )
            except RuleStoreError as exc:
                logger.warning("Rule store rejected rule %d for %s: %s", rule.id, domain, exc)
                stale = [r.id for r in installed]
                if self._state.owners.get(rule.id, domain) == domain:
                    stale.append(rule.id)
                self._remove_quietly(stale)
                for rid in stale:
                    previous = self._state.owners.get(rid)
                    if previous is not None and previous != domain:
                        # The rolled-back add had overwritten a colliding domain's rule.
                        logger.info("Rule id %d rolled back, %s needs reinstalling", rid, previous)
                        del self._state.owners[rid]
                        self._state.known_domains.discard(previous)
                        self._remember(previous)
                self._forget(domain)
                self._remember(domain)
                return InstallOutcome.FAILED
            installed.append(rule)

        for rule in installed:
            previous = self._state.owners.get(rule.id)
            if previous is not None and previous != domain:
                logger.info("Rule id %d collision: %s replaces %s", rule.id, domain, previous)
                self._state.known_domains.discard(previous)
            self._state.owners[rule.id] = domain
        self._state.known_domains.add(domain)
        self._state.pending.pop(domain, None)
        self._state.rules_day = day
        for rule in installed:
            self._dispatch(
                "post_rule_installed",
                {"domain": domain, "channel": rule.channel.value, "rule_id": rule.id},
            )
        return InstallOutcome.INSTALLED

    def _render(self, rule: TaggingRule) -> DeclarativeRule:
        return rule.to_declarative(
            priority=self._rules.priority,
            custom_header=self._tagging.custom_header,
            base_user_agent=self._tagging.user_agent,
        )

    def _clear_all(self) -> RemovalReport:
        """Remove every rule this reconciler may own, then empty the known set.

        One bulk call first. If the store rejects it, fall back to
        one call per id and keep going past failures.
        """
        ceiling = id_ceiling(self._rules.id_space)
        ids = set(self._state.owners)
        for domain in self._state.known_domains:
            ids.update(self.rule_ids_for(domain))
        try:
            ids.update(r.id for r in self._store.get_dynamic_rules() if 1 <= r.id <= ceiling)
        except RuleStoreError as exc:
            logger.warning("Could not list rules before removal: %s", exc)

        removed: list[int] = []
        failed: list[int] = []
        ordered = sorted(ids)
        if ordered:
            try:
                self._store.update_dynamic_rules(remove_rule_ids=ordered)
                removed = ordered
            except RuleStoreError as exc:
                logger.warning("Bulk removal failed, removing one by one: %s", exc)
                for rid in ordered:
                    try:
                        self._store.update_dynamic_rules(remove_rule_ids=[rid])
                    except RuleStoreError:
                        logger.warning("Could not remove rule %d", rid)
                        failed.append(rid)
                    else:
                        removed.append(rid)

        for domain in sorted(self._state.known_domains):
            self._remember(domain)
        self._state.known_domains.clear()
        self._state.owners.clear()
        self._state.rules_day = None

        report = RemovalReport(removed=tuple(removed), failed=tuple(failed))
        if ordered:
            self._dispatch(
                "post_rules_cleared", {"removed": list(report.removed), "failed": list(report.failed)}
            )
        return report

    def _remove_quietly(self, ids: list[int]) -> None:
        if not ids:
            return
        try:
            self._store.update_dynamic_rules(remove_rule_ids=ids)
        except RuleStoreError as exc:
            logger.warning("Could not roll back rules %s: %s", ids, exc)

    def _forget(self, domain: str) -> None:
        self._state.known_domains.discard(domain)
        for rid in [r for r, d in self._state.owners.items() if d == domain]:
            del self._state.owners[rid]

    def _remember(self, domain: str) -> None:
        pending = self._state.pending
        pending[domain] = None
        pending.move_to_end(domain)
        while len(pending) > MAX_PENDING_DOMAINS:
            pending.popitem(last=False)

    def _dispatch(self, hook_name: str, payload: dict[str, Any]) -> None:
        if self._event_bus is None:
            return
        try:
            self._event_bus.dispatch(hook_name, payload)
        except Exception:
            logger.debug("Event dispatch failed for %s", hook_name, exc_info=True)
