"""Tests for TokenResolver."""

from __future__ import annotations

import pytest

from pimsctl.domain.credentials import Credential, SessionState
from pimsctl.domain.derivation import derive
from pimsctl.domain.errors import MissingCredential
from pimsctl.services.resolver import TokenResolver, tagging_url
from tests.conftest import DAY, FakeClock


class TestResolve:
    def test_derived_deployment(self, clock: FakeClock, logged_in: SessionState) -> None:
        value = TokenResolver(clock=clock).resolve(logged_in, "example.com")
        assert value == f"https://{derive('u1', 's1', 'example.com', DAY)}.openpims.test"

    def test_bare_credential(self, clock: FakeClock, credential: Credential) -> None:
        resolver = TokenResolver(clock=clock)
        assert resolver.resolve(credential, "example.com") == tagging_url(
            derive("u1", "s1", "example.com", DAY), "openpims.test"
        )

    def test_prebuilt_deployment_ignores_domain(self, clock: FakeClock) -> None:
        state = SessionState(logged_in=True, prebuilt_token="https://abc.openpims.test")
        resolver = TokenResolver(clock=clock)
        assert resolver.resolve(state, "a.com") == "https://abc.openpims.test"
        assert resolver.resolve(state, "b.com") == "https://abc.openpims.test"

    def test_credential_wins_over_prebuilt(self, clock: FakeClock, credential: Credential) -> None:
        state = SessionState(logged_in=True, credential=credential, prebuilt_token="https://x")
        assert TokenResolver(clock=clock).resolve(state, "a.com") != "https://x"

    def test_reports_day(self, clock: FakeClock, logged_in: SessionState) -> None:
        _value, day = TokenResolver(clock=clock).resolve_with_day(logged_in, "a.com")
        assert day == DAY

    def test_never_caches(self, clock: FakeClock, logged_in: SessionState) -> None:
        resolver = TokenResolver(clock=clock)
        today = resolver.resolve(logged_in, "example.com")
        clock.advance_days()
        assert resolver.current_day() == DAY + 1
        assert resolver.resolve(logged_in, "example.com") != today


class TestMissingCredential:
    @pytest.mark.parametrize(
        "state",
        [
            None,
            SessionState(),
            SessionState(logged_in=False, prebuilt_token="https://x"),
            SessionState(logged_in=True),
        ],
    )
    def test_raises(self, clock: FakeClock, state: SessionState | None) -> None:
        with pytest.raises(MissingCredential):
            TokenResolver(clock=clock).resolve(state, "example.com")

    def test_incomplete_credential(self, clock: FakeClock) -> None:
        credential = Credential(user_id="u1", secret="", app_domain="openpims.test")
        with pytest.raises(MissingCredential):
            TokenResolver(clock=clock).resolve(credential, "example.com")
