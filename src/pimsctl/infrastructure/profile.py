"""Profile — the single dependency container behind every service.

A profile is a directory holding ``.pimsctl/pimsctl.db``. The Profile owns
the database engine, the session store, the rule store, the login client,
and (once initialized) the plugin event bus.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from pimsctl.infrastructure.database.engine import PROFILE_DIRNAME, init_database
from pimsctl.infrastructure.login_client import LoginClient
from pimsctl.infrastructure.rule_store import SqlRuleStore
from pimsctl.infrastructure.session_store import SessionStore

if TYPE_CHECKING:
    import httpx
    from sqlalchemy.engine import Engine

    from pimsctl.config.settings import PimsSettings
    from pimsctl.infrastructure.rule_store import RuleStore
    from pimsctl.plugins.event_bus import EventBus

logger = logging.getLogger(__name__)


class Profile:
    """Stores and clients for one profile directory.

    Constructed once at CLI startup from :class:`PimsSettings`. Tests may
    pass *rule_store* (e.g. an in-memory or failure-injecting store) and
    *transport* (an ``httpx.MockTransport``) to replace the defaults.
    """

    def __init__(
        self,
        settings: PimsSettings,
        *,
        rule_store: RuleStore | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._engine: Engine = init_database(self.root)
        self._session_store = SessionStore(self._engine)
        self._rule_store: RuleStore = rule_store or SqlRuleStore(
            self._engine, max_rules=settings.rules.max_rules
        )
        self._login_client = LoginClient(timeout=settings.login.timeout, transport=transport)
        self._event_bus: EventBus | None = None

    @property
    def root(self) -> Path:
        return self._settings.profile_root

    @property
    def settings(self) -> PimsSettings:
        return self._settings

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def session_store(self) -> SessionStore:
        return self._session_store

    @property
    def rule_store(self) -> RuleStore:
        return self._rule_store

    @property
    def login_client(self) -> LoginClient:
        return self._login_client

    @property
    def event_bus(self) -> EventBus | None:
        """The plugin event bus (None if not initialized)."""
        return self._event_bus

    def init_event_bus(self, *, sync: bool = False) -> None:
        """Discover plugins (entry points and ``.pimsctl/plugins/``) and wire the bus."""
        from pimsctl.plugins.event_bus import EventBus
        from pimsctl.plugins.manager import PluginManager

        pm = PluginManager()
        loaded = pm.load(local_dir=self.root / PROFILE_DIRNAME / "plugins")
        if loaded:
            logger.debug("Loaded plugins: %s", ", ".join(loaded))
        self._event_bus = EventBus(pm, sync=sync)

    def close(self) -> None:
        if self._event_bus is not None:
            self._event_bus.shutdown()
            self._event_bus = None
        self._engine.dispose()
