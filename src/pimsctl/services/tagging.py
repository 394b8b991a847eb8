"""Request taggers — put the tagging value on an outgoing ``httpx.Request``.

Two ways to tag, one interface (:class:`RequestTagger`):

- :class:`DeclarativeRuleTagger` applies the rules installed in the rule
  store, the way a declarative request-modification engine would.
- :class:`InterceptingTagger` resolves the value at request time, for
  hosts without a rule store. It resolves once per request and reuses
  that value for every channel, so header and cookie always agree.

:func:`select_tagger` picks one by rule-store capability.
:func:`request_hook` adapts a tagger to httpx ``event_hooks``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Protocol

import httpx

from pimsctl.config.models import TaggingConfig
from pimsctl.domain.credentials import SessionState
from pimsctl.domain.errors import MissingCredential
from pimsctl.domain.rules import HeaderModification, cookie_pair, user_agent_value
from pimsctl.domain.types import Channel, HeaderOperation, ResourceType, TaggingMode
from pimsctl.domain.urls import host_from_url, normalize_domain

if TYPE_CHECKING:
    from pimsctl.infrastructure.rule_store import RuleStore
    from pimsctl.services.resolver import TokenResolver

logger = logging.getLogger(__name__)

SessionSource = Callable[[], SessionState]


class RequestTagger(Protocol):
    """Capability interface: tag *request* for *domain* (defaults to its host)."""

    def tag(self, request: httpx.Request, domain: str | None = None) -> httpx.Request: ...


def apply_modification(headers: httpx.Headers, modification: HeaderModification) -> None:
    """Apply one header edit in place. ``append`` joins cookies with ``"; "``."""
    name = modification.header
    if modification.operation is HeaderOperation.REMOVE:
        headers.pop(name, None)
        return
    value = modification.value or ""
    if modification.operation is HeaderOperation.APPEND and headers.get(name):
        separator = "; " if name.lower() == "cookie" else ", "
        headers[name] = f"{headers[name]}{separator}{value}"
        return
    headers[name] = value


class DeclarativeRuleTagger:
    """Apply matching store rules, lowest priority first so the highest wins."""

    def __init__(
        self,
        store: RuleStore,
        *,
        resource_type: ResourceType = ResourceType.MAIN_FRAME,
    ) -> None:
        self._store = store
        self._resource_type = resource_type

    def tag(self, request: httpx.Request, domain: str | None = None) -> httpx.Request:
        url = str(request.url)
        matching = [
            rule
            for rule in self._store.get_dynamic_rules()
            if rule.condition.matches(url, self._resource_type)
        ]
        matching.sort(key=lambda r: (r.priority, r.id))
        for rule in matching:
            for modification in rule.action.request_headers:
                apply_modification(request.headers, modification)
        return request


class InterceptingTagger:
    """Resolve and attach the tagging value while the request is in flight.

    A custom header the caller already set is left alone.
    """

    def __init__(
        self,
        session_source: SessionSource,
        resolver: TokenResolver,
        *,
        channels: Sequence[Channel] = (Channel.CUSTOM_HEADER, Channel.COOKIE),
        custom_header: str | None = None,
        base_user_agent: str | None = None,
    ) -> None:
        defaults = TaggingConfig()
        self._session_source = session_source
        self._resolver = resolver
        self._channels = tuple(channels)
        self._custom_header = custom_header or defaults.custom_header
        self._base_user_agent = base_user_agent or defaults.user_agent

    def tag(self, request: httpx.Request, domain: str | None = None) -> httpx.Request:
        host = normalize_domain(domain or request.url.host or "")
        if not host:
            return request
        try:
            value = self._resolver.resolve(self._session_source(), host)
        except MissingCredential:
            logger.debug("Not tagging %s: no credential", host)
            return request

        headers = request.headers
        for channel in self._channels:
            if channel is Channel.CUSTOM_HEADER:
                if self._custom_header not in headers:
                    headers[self._custom_header] = value
            elif channel is Channel.USER_AGENT:
                headers["User-Agent"] = user_agent_value(value, self._base_user_agent)
            else:
                apply_modification(
                    headers,
                    HeaderModification(
                        header="Cookie",
                        operation=HeaderOperation.APPEND,
                        value=cookie_pair(value),
                    ),
                )
        return request


def select_tagger(
    store: RuleStore | None,
    *,
    session_source: SessionSource,
    resolver: TokenResolver,
    tagging: TaggingConfig | None = None,
) -> RequestTagger:
    """Declarative tagging when the store supports it, interception otherwise.

    ``tagging.mode = intercept`` forces interception.
    """
    cfg = tagging or TaggingConfig()
    if (
        cfg.mode is TaggingMode.AUTO
        and store is not None
        and getattr(store, "supports_declarative", False)
    ):
        return DeclarativeRuleTagger(store)
    return InterceptingTagger(
        session_source,
        resolver,
        channels=cfg.channels,
        custom_header=cfg.custom_header,
        base_user_agent=cfg.user_agent,
    )


def request_hook(tagger: RequestTagger) -> Callable[[httpx.Request], None]:
    """httpx request event hook that tags every request sent by a client.

    Usage::

        client = httpx.Client(event_hooks={"request": [request_hook(tagger)]})
    """

    def _hook(request: httpx.Request) -> None:
        if host_from_url(str(request.url)) is None:
            return
        tagger.tag(request)

    return _hook
