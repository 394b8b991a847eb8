"""Tests for request taggers and the httpx request hook."""

from __future__ import annotations

from urllib.parse import quote

import httpx
import pytest

from pimsctl.config.models import TaggingConfig
from pimsctl.domain.credentials import SessionState
from pimsctl.domain.derivation import derive
from pimsctl.domain.rules import HeaderModification, TaggingRule, user_agent_value
from pimsctl.domain.types import Channel, HeaderOperation, TaggingMode
from pimsctl.infrastructure.rule_store import InMemoryRuleStore
from pimsctl.services.reconciler import Reconciler
from pimsctl.services.resolver import TokenResolver
from pimsctl.services.tagging import (
    DeclarativeRuleTagger,
    InterceptingTagger,
    apply_modification,
    request_hook,
    select_tagger,
)
from tests.conftest import DAY, FakeClock

VALUE = f"https://{derive('u1', 's1', 'example.com', DAY)}.openpims.test"


class TestApplyModification:
    def test_set_replaces(self) -> None:
        headers = httpx.Headers({"X-A": "old"})
        apply_modification(headers, HeaderModification(header="X-A", operation=HeaderOperation.SET, value="new"))
        assert headers["X-A"] == "new"

    def test_append_cookie_uses_semicolon(self) -> None:
        headers = httpx.Headers({"Cookie": "a=1"})
        mod = HeaderModification(header="Cookie", operation=HeaderOperation.APPEND, value="b=2")
        apply_modification(headers, mod)
        assert headers["Cookie"] == "a=1; b=2"

    def test_append_to_missing_sets(self) -> None:
        headers = httpx.Headers()
        mod = HeaderModification(header="Cookie", operation=HeaderOperation.APPEND, value="b=2")
        apply_modification(headers, mod)
        assert headers["Cookie"] == "b=2"

    def test_append_other_header_uses_comma(self) -> None:
        headers = httpx.Headers({"Accept": "text/html"})
        mod = HeaderModification(header="Accept", operation=HeaderOperation.APPEND, value="*/*")
        apply_modification(headers, mod)
        assert headers["Accept"] == "text/html, */*"

    def test_remove(self) -> None:
        headers = httpx.Headers({"X-A": "1"})
        apply_modification(headers, HeaderModification(header="X-A", operation=HeaderOperation.REMOVE))
        assert "X-A" not in headers


class TestDeclarativeRuleTagger:
    def test_applies_installed_rule(
        self, reconciler: Reconciler, store: InMemoryRuleStore, logged_in: SessionState
    ) -> None:
        reconciler.sync_session(logged_in)
        reconciler.on_domain_observed("example.com")
        request = DeclarativeRuleTagger(store).tag(httpx.Request("GET", "https://example.com/page"))
        assert request.headers["User-Agent"].endswith(f"(+{VALUE})")

    def test_bare_origin_matches_root_path(
        self, reconciler: Reconciler, store: InMemoryRuleStore, logged_in: SessionState
    ) -> None:
        reconciler.sync_session(logged_in)
        reconciler.on_domain_observed("example.com")
        request = DeclarativeRuleTagger(store).tag(httpx.Request("GET", "https://example.com"))
        assert request.headers["User-Agent"].endswith(f"(+{VALUE})")

    def test_subdomains_untouched(
        self, reconciler: Reconciler, store: InMemoryRuleStore, logged_in: SessionState
    ) -> None:
        reconciler.sync_session(logged_in)
        reconciler.on_domain_observed("example.com")
        request = DeclarativeRuleTagger(store).tag(httpx.Request("GET", "https://cdn.example.com/x"))
        assert "OpenPIMS" not in request.headers.get("User-Agent", "")

    def test_higher_priority_applied_last(self) -> None:
        store = InMemoryRuleStore()
        low = TaggingRule(id=1, domain="a.com", channel=Channel.CUSTOM_HEADER, value="low")
        high = TaggingRule(id=2, domain="a.com", channel=Channel.CUSTOM_HEADER, value="high")
        store.update_dynamic_rules(
            add_rules=[high.to_declarative(priority=5), low.to_declarative(priority=1)]
        )
        request = DeclarativeRuleTagger(store).tag(httpx.Request("GET", "https://a.com/"))
        assert request.headers["X-OpenPIMS"] == "high"


class TestInterceptingTagger:
    @pytest.fixture
    def tagger(self, clock: FakeClock, logged_in: SessionState) -> InterceptingTagger:
        return InterceptingTagger(lambda: logged_in, TokenResolver(clock=clock))

    def test_header_and_cookie_share_one_value(self, tagger: InterceptingTagger) -> None:
        request = tagger.tag(httpx.Request("GET", "https://example.com/"))
        assert request.headers["X-OpenPIMS"] == VALUE
        assert request.headers["Cookie"] == f"x-openpims={quote(VALUE, safe='')}"

    def test_existing_cookie_kept(self, tagger: InterceptingTagger) -> None:
        request = tagger.tag(httpx.Request("GET", "https://example.com/", headers={"Cookie": "sid=1"}))
        assert request.headers["Cookie"].startswith("sid=1; x-openpims=")

    def test_caller_header_not_overwritten(self, tagger: InterceptingTagger) -> None:
        request = tagger.tag(
            httpx.Request("GET", "https://example.com/", headers={"X-OpenPIMS": "mine"})
        )
        assert request.headers["X-OpenPIMS"] == "mine"

    def test_explicit_domain(self, tagger: InterceptingTagger) -> None:
        request = tagger.tag(httpx.Request("GET", "https://other.test/"), domain="example.com")
        assert request.headers["X-OpenPIMS"] == VALUE

    def test_user_agent_channel(self, clock: FakeClock, logged_in: SessionState) -> None:
        tagger = InterceptingTagger(
            lambda: logged_in,
            TokenResolver(clock=clock),
            channels=(Channel.USER_AGENT,),
            base_user_agent="Base/1.0",
        )
        request = tagger.tag(httpx.Request("GET", "https://example.com/"))
        assert request.headers["User-Agent"] == user_agent_value(VALUE, "Base/1.0")

    def test_logged_out_leaves_request_alone(self, clock: FakeClock) -> None:
        tagger = InterceptingTagger(SessionState, TokenResolver(clock=clock))
        request = tagger.tag(httpx.Request("GET", "https://example.com/"))
        assert "X-OpenPIMS" not in request.headers
        assert "Cookie" not in request.headers

    def test_resolves_per_request(self, clock: FakeClock, tagger: InterceptingTagger) -> None:
        first = tagger.tag(httpx.Request("GET", "https://example.com/")).headers["X-OpenPIMS"]
        clock.advance_days()
        second = tagger.tag(httpx.Request("GET", "https://example.com/")).headers["X-OpenPIMS"]
        assert first != second


class TestSelectTagger:
    def test_declarative_when_supported(self, clock: FakeClock) -> None:
        tagger = select_tagger(
            InMemoryRuleStore(), session_source=SessionState, resolver=TokenResolver(clock=clock)
        )
        assert isinstance(tagger, DeclarativeRuleTagger)

    def test_intercepting_without_store(self, clock: FakeClock) -> None:
        tagger = select_tagger(None, session_source=SessionState, resolver=TokenResolver(clock=clock))
        assert isinstance(tagger, InterceptingTagger)

    def test_intercepting_when_store_lacks_capability(self, clock: FakeClock) -> None:
        class PlainStore(InMemoryRuleStore):
            supports_declarative = False

        tagger = select_tagger(
            PlainStore(), session_source=SessionState, resolver=TokenResolver(clock=clock)
        )
        assert isinstance(tagger, InterceptingTagger)

    def test_intercept_mode_overrides_capability(self, clock: FakeClock) -> None:
        tagger = select_tagger(
            InMemoryRuleStore(),
            session_source=SessionState,
            resolver=TokenResolver(clock=clock),
            tagging=TaggingConfig(mode=TaggingMode.INTERCEPT, channels=(Channel.COOKIE,)),
        )
        assert isinstance(tagger, InterceptingTagger)


class TestRequestHook:
    def test_tags_client_requests(self, clock: FakeClock, logged_in: SessionState) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        tagger = InterceptingTagger(lambda: logged_in, TokenResolver(clock=clock))
        with httpx.Client(
            transport=httpx.MockTransport(handler),
            event_hooks={"request": [request_hook(tagger)]},
        ) as client:
            client.get("https://example.com/")
        assert seen[0].headers["X-OpenPIMS"] == VALUE
