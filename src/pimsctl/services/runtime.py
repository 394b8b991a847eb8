"""TaggingRuntime — the wired-up tagging engine for one profile.

Owns the resolver, reconciler, serial queue, and storage watcher, and
builds request taggers on demand. ``start()`` re-attaches to a persisted
profile: known domains are rebuilt from the rule store, then the stored
session is reconciled.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from pimsctl.services.queue import SerialEventQueue
from pimsctl.services.reconciler import InstallOutcome, Reconciler
from pimsctl.services.resolver import Clock, TokenResolver
from pimsctl.services.tagging import RequestTagger, select_tagger
from pimsctl.services.watcher import StorageWatcher

if TYPE_CHECKING:
    from collections.abc import Iterable

    from pimsctl.infrastructure.profile import Profile
    from pimsctl.services.reconciler import ReconcileReport

logger = logging.getLogger(__name__)


class TaggingRuntime:
    """Resolver + reconciler + queue + watcher over a :class:`Profile`."""

    def __init__(self, profile: Profile, *, clock: Clock = time.time) -> None:
        settings = profile.settings
        self.profile = profile
        self.resolver = TokenResolver(clock=clock)
        self.reconciler = Reconciler(
            profile.rule_store,
            self.resolver,
            tagging=settings.tagging,
            rules=settings.rules,
            event_bus=profile.event_bus,
        )
        self.queue = SerialEventQueue(sync=settings.events.sync)
        self.watcher = StorageWatcher(profile.session_store, self.reconciler, self.queue)
        self._started = False

    def start(self) -> ReconcileReport:
        """Hydrate from the rule store and reconcile the stored session. Idempotent."""
        if not self._started:
            known = self.queue.submit(self.reconciler.hydrate).result(timeout=30)
            logger.debug("Hydrated %d known domains", known)
            self._started = True
        report = self.watcher.start().result(timeout=30)
        self.watcher.flush()
        return report

    def observe(self, domain: str) -> InstallOutcome:
        """Queue a domain observation and wait for its outcome."""
        return self.queue.submit(self.reconciler.on_domain_observed, domain).result(timeout=30)

    def reopen(self, domains: Iterable[str]) -> ReconcileReport:
        """Tag pages that were already open when the session started."""
        return self.queue.submit(self.reconciler.on_login_state_changed, True, tuple(domains)).result(
            timeout=30
        )

    def settle(self) -> list[ReconcileReport]:
        """Wait for every session change queued so far."""
        return self.watcher.flush()

    def tagger(self) -> RequestTagger:
        return select_tagger(
            self.profile.rule_store,
            session_source=self.watcher.snapshot,
            resolver=self.resolver,
            tagging=self.profile.settings.tagging,
        )

    def close(self) -> None:
        self.watcher.detach()
        self.queue.shutdown()
