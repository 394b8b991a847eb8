"""Async lifecycle notifications via pluggy + ThreadPoolExecutor.

Unlike reconciler events, notifications are fire-and-observe: they are
never persisted (no browsing history is written), and a failing plugin
is recorded and logged without affecting the tagging engine.

INVARIANT: Plugin failures are warnings, never errors.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pimsctl.plugins.manager import PluginManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HookOutcome:
    hook_name: str
    status: str  # completed | failed
    error: str | None = None


class EventBus:
    """Dispatch lifecycle hooks to plugins.

    Parameters:
        plugin_manager: Loaded PluginManager for hook dispatch.
        sync: Dispatch inline (useful for testing / ``--sync``).
        max_workers: ThreadPoolExecutor worker count.
    """

    def __init__(
        self,
        plugin_manager: PluginManager,
        *,
        sync: bool = False,
        max_workers: int = 2,
    ) -> None:
        self._pm = plugin_manager
        self._sync = sync
        self._executor: ThreadPoolExecutor | None = (
            None if sync else ThreadPoolExecutor(max_workers=max_workers)
        )
        self._futures: list[Future[HookOutcome]] = []
        self._outcomes: list[HookOutcome] = []

    def dispatch(self, hook_name: str, payload: dict[str, Any]) -> None:
        """Call *hook_name* on all plugins, inline or on the executor."""
        if self._sync or self._executor is None:
            self._outcomes.append(self._execute_hook(hook_name, payload))
            return
        self._futures.append(self._executor.submit(self._execute_hook, hook_name, payload))

    def drain(self) -> list[HookOutcome]:
        """Wait for in-flight hooks and return (then forget) all outcomes."""
        for future in self._futures:
            self._outcomes.append(future.result(timeout=30))
        self._futures.clear()
        outcomes, self._outcomes = self._outcomes, []
        return outcomes

    def shutdown(self) -> None:
        """Shutdown ThreadPoolExecutor, waiting for pending tasks."""
        self.drain()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _execute_hook(self, hook_name: str, payload: dict[str, Any]) -> HookOutcome:
        hook_fn = getattr(self._pm.hook, hook_name, None)
        if hook_fn is None:
            return HookOutcome(hook_name, "completed")
        try:
            hook_fn(**payload)
        except Exception as exc:
            logger.warning("Hook %s failed: %s", hook_name, exc)
            return HookOutcome(hook_name, "failed", str(exc))
        return HookOutcome(hook_name, "completed")
