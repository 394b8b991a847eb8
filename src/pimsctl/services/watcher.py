"""StorageWatcher — turns session-store changes into reconciler events.

The watcher snapshots the session at notification time, in write order,
and hands the snapshot to the serial queue. The reconciler diffs it
against its current session, so a credential rewrite becomes a rotation
and an ``isLoggedIn`` flip becomes a login or logout.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import TYPE_CHECKING

from pimsctl.domain.credentials import SESSION_KEYS, SessionState

if TYPE_CHECKING:
    from pimsctl.infrastructure.session_store import SessionStore, StorageChange
    from pimsctl.services.queue import SerialEventQueue
    from pimsctl.services.reconciler import ReconcileReport, Reconciler

logger = logging.getLogger(__name__)


class StorageWatcher:
    """Bridge from :class:`SessionStore` listeners to the reconciler.

    Reports are kept until :meth:`flush`. Once more than ``max_unflushed``
    are waiting, finished ones are dropped, so a host that never flushes
    only holds the syncs still in flight.
    """

    max_unflushed = 256

    def __init__(
        self,
        session_store: SessionStore,
        reconciler: Reconciler,
        queue: SerialEventQueue,
    ) -> None:
        self._store = session_store
        self._reconciler = reconciler
        self._queue = queue
        self._futures: list[Future[ReconcileReport]] = []
        self._attached = False

    def attach(self) -> None:
        if not self._attached:
            self._store.add_listener(self._on_change)
            self._attached = True

    def detach(self) -> None:
        if self._attached:
            self._store.remove_listener(self._on_change)
            self._attached = False

    def start(self) -> Future[ReconcileReport]:
        """Attach and reconcile against the session as currently stored."""
        self.attach()
        return self._submit(self.snapshot())

    def snapshot(self) -> SessionState:
        return SessionState.from_storage(self._store.get(SESSION_KEYS))

    def flush(self) -> list[ReconcileReport]:
        """Wait for queued syncs and return their reports (oldest first)."""
        futures, self._futures = self._futures, []
        return [future.result(timeout=30) for future in futures]

    def _on_change(self, changes: dict[str, StorageChange]) -> None:
        relevant = [key for key in changes if key in SESSION_KEYS]
        if not relevant:
            return
        logger.debug("Session keys changed", extra={"keys": sorted(relevant)})
        self._submit(self.snapshot())

    def _submit(self, snapshot: SessionState) -> Future[ReconcileReport]:
        future = self._queue.submit(self._reconciler.sync_session, snapshot)
        self._futures.append(future)
        if len(self._futures) > self.max_unflushed:
            self._futures = [f for f in self._futures if not f.done()]
        return future
