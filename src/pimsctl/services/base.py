"""BaseService — abstract foundation for pimsctl services.

Every service receives a :class:`TaggingRuntime` at construction time.
The runtime exposes the profile (stores, login client, event bus) and
the tagging engine (resolver, reconciler, taggers).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pimsctl.infrastructure.profile import Profile
    from pimsctl.services.runtime import TaggingRuntime

logger = logging.getLogger(__name__)


class BaseService:
    """Abstract base for service-layer classes.

    Usage::

        class SessionService(BaseService):
            def status(self) -> ServiceResult:
                session = self._runtime.watcher.snapshot()
                ...
    """

    def __init__(self, runtime: TaggingRuntime) -> None:
        self._runtime = runtime

    @property
    def _profile(self) -> Profile:
        return self._runtime.profile

    def _dispatch_event(
        self,
        hook_name: str,
        payload: dict[str, Any],
        warnings: list[str],
    ) -> None:
        """Dispatch a lifecycle event. No-op if event bus not initialized.

        INVARIANT: Plugin failures are warnings, never errors.
        """
        bus = self._profile.event_bus
        if bus is None:
            return
        try:
            bus.dispatch(hook_name, payload)
        except Exception:
            logger.debug("Event dispatch failed for %s", hook_name, exc_info=True)
            warnings.append(f"Event dispatch failed for {hook_name}")
