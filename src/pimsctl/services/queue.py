"""SerialEventQueue — one-at-a-time, arrival-ordered event execution.

A single-worker ThreadPoolExecutor: events submitted from any thread run
strictly in submission order, never concurrently. With ``sync=True`` each
event runs inline in the caller's thread (tests, ``--sync``).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SerialEventQueue:
    """Serialize reconciler events."""

    def __init__(self, *, sync: bool = False) -> None:
        self._sync = sync
        self._executor: ThreadPoolExecutor | None = (
            None if sync else ThreadPoolExecutor(max_workers=1, thread_name_prefix="pimsctl-events")
        )

    @property
    def sync(self) -> bool:
        return self._sync

    def submit(self, fn: Callable[..., T], /, *args: Any, **kwargs: Any) -> Future[T]:
        """Queue ``fn(*args, **kwargs)``. Errors surface through the returned future."""
        if self._executor is None:
            future: Future[T] = Future()
            try:
                future.set_result(fn(*args, **kwargs))
            except Exception as exc:
                future.set_exception(exc)
            return future
        return self._executor.submit(fn, *args, **kwargs)

    def flush(self, timeout: float | None = 30) -> None:
        """Block until every event submitted so far has run."""
        self.submit(lambda: None).result(timeout=timeout)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
