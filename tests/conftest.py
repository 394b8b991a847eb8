"""Shared pytest fixtures and test helpers for pimsctl tests."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from pathlib import Path

import httpx
import pytest
from click.testing import CliRunner
from sqlalchemy.engine import Engine

from pimsctl.config.models import RulesConfig, TaggingConfig
from pimsctl.config.settings import PimsSettings
from pimsctl.domain.credentials import Credential, SessionState
from pimsctl.domain.derivation import SECONDS_PER_DAY
from pimsctl.domain.errors import RuleStoreError
from pimsctl.domain.rules import DeclarativeRule
from pimsctl.infrastructure.database.engine import init_database
from pimsctl.infrastructure.profile import Profile
from pimsctl.infrastructure.rule_store import InMemoryRuleStore
from pimsctl.services.reconciler import Reconciler
from pimsctl.services.resolver import TokenResolver
from pimsctl.services.runtime import TaggingRuntime

# Day 19000 starts at 2022-01-08T00:00:00Z.
DAY = 19000
NOON = DAY * SECONDS_PER_DAY + SECONDS_PER_DAY // 2

LOGIN_URL = "https://pims.test/login"
GOOD_EMAIL = "user@example.com"
GOOD_PASSWORD = "hunter2"


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable wall clock that tests move by hand."""

    def __init__(self, now: float = NOON) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance_days(self, days: int = 1) -> None:
        self.now += days * SECONDS_PER_DAY


class FlakyRuleStore(InMemoryRuleStore):
    """In-memory store that records calls and rejects on demand.

    Attributes:
        reject_add_ids: Any update adding one of these ids is rejected.
        reject_bulk_remove: Removal-only updates with more than one id are rejected.
        reject_remove_ids: Removal-only updates naming one of these ids are rejected.
    """

    def __init__(self, **kwargs: object) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self.calls: list[tuple[list[int], list[int]]] = []
        self.reject_add_ids: set[int] = set()
        self.reject_bulk_remove = False
        self.reject_remove_ids: set[int] = set()

    def update_dynamic_rules(
        self,
        *,
        remove_rule_ids: Iterable[int] = (),
        add_rules: Iterable[DeclarativeRule] = (),
    ) -> None:
        removes = list(remove_rule_ids)
        adds = list(add_rules)
        self.calls.append((removes, [r.id for r in adds]))
        if any(r.id in self.reject_add_ids for r in adds):
            msg = "Rejected by test"
            raise RuleStoreError(msg, rule_ids=[r.id for r in adds])
        if not adds:
            if self.reject_bulk_remove and len(removes) > 1:
                msg = "Bulk removal rejected by test"
                raise RuleStoreError(msg, rule_ids=removes)
            if self.reject_remove_ids.intersection(removes):
                msg = "Removal rejected by test"
                raise RuleStoreError(msg, rule_ids=removes)
        super().update_dynamic_rules(remove_rule_ids=removes, add_rules=adds)

    @property
    def added_ids(self) -> list[int]:
        return [rid for _removes, adds in self.calls for rid in adds]


def login_handler(request: httpx.Request) -> httpx.Response:
    """Fake OpenPIMS login endpoint for GOOD_EMAIL / GOOD_PASSWORD."""
    from pimsctl.infrastructure.login_client import basic_auth_header

    if request.headers.get("Authorization") != basic_auth_header(GOOD_EMAIL, GOOD_PASSWORD):
        return httpx.Response(401, text="Unauthorized")
    if request.url.path.endswith("/prebuilt"):
        return httpx.Response(200, text="https://prebuilt.openpims.test/abc\n")
    body = {"userId": "u1", "token": "s1", "domain": "openpims.test"}
    return httpx.Response(200, content=json.dumps(body), headers={"content-type": "application/json"})


def rule_for(store: InMemoryRuleStore, domain: str) -> DeclarativeRule | None:
    """First rule whose condition targets *domain*."""
    for rule in store.get_dynamic_rules():
        if rule.condition.request_domains and domain in rule.condition.request_domains:
            return rule
    return None


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def db_engine(tmp_path: Path) -> Engine:
    """Initialized SQLite engine with all tables created."""
    engine = init_database(tmp_path)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> FlakyRuleStore:
    return FlakyRuleStore()


@pytest.fixture
def credential() -> Credential:
    return Credential(user_id="u1", secret="s1", app_domain="openpims.test")


@pytest.fixture
def logged_in(credential: Credential) -> SessionState:
    return SessionState(logged_in=True, credential=credential)


@pytest.fixture
def make_reconciler(
    store: FlakyRuleStore, clock: FakeClock
) -> Callable[..., Reconciler]:
    """Factory for reconcilers over the shared store and fake clock."""

    def _make(
        *,
        tagging: TaggingConfig | None = None,
        rules: RulesConfig | None = None,
        **kwargs: object,
    ) -> Reconciler:
        return Reconciler(
            store,
            TokenResolver(clock=clock),
            tagging=tagging,
            rules=rules,
            **kwargs,  # type: ignore[arg-type]
        )

    return _make


@pytest.fixture
def reconciler(make_reconciler: Callable[..., Reconciler]) -> Reconciler:
    return make_reconciler()


@pytest.fixture
def settings(tmp_path: Path) -> PimsSettings:
    return PimsSettings(
        profile_root=tmp_path,
        login={"server_url": LOGIN_URL},
        events={"sync": True},
    )


@pytest.fixture
def profile(settings: PimsSettings) -> Profile:
    """Profile on a temp directory with the fake login endpoint."""
    p = Profile(settings, transport=httpx.MockTransport(login_handler))
    p.init_event_bus(sync=True)
    try:
        yield p
    finally:
        p.close()


@pytest.fixture
def runtime(profile: Profile, clock: FakeClock) -> TaggingRuntime:
    rt = TaggingRuntime(profile, clock=clock)
    rt.start()
    try:
        yield rt
    finally:
        rt.close()


@pytest.fixture
def _isolated_profile(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run CLI commands against a temp profile with the fake login endpoint.

    Use via ``@pytest.mark.usefixtures("_isolated_profile")`` on command
    test classes.
    """
    from pimsctl.infrastructure import login_client

    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("PIMSCTL_CONFIG", raising=False)
    monkeypatch.setenv("PIMSCTL_LOGIN__SERVER_URL", LOGIN_URL)

    real = login_client.LoginClient

    def _client(**kwargs: object) -> login_client.LoginClient:
        kwargs["transport"] = httpx.MockTransport(login_handler)
        return real(**kwargs)  # type: ignore[arg-type]

    monkeypatch.setattr("pimsctl.infrastructure.profile.LoginClient", _client)
