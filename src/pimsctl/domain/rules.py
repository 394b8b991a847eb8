"""Tagging rules and their declarative rule-store payloads.

A :class:`TaggingRule` is the engine's view: one domain, one channel, one
tagging value. :meth:`TaggingRule.to_declarative` renders it into the
request-modification payload the rule store understands (a
``modifyHeaders`` action plus a URL-matching condition). Payloads
serialize with the store's camelCase keys via ``model_dump(by_alias=True)``.

Channel → header operation:

- ``user_agent``: set ``User-Agent`` to ``"{base} OpenPIMS/1.0 (+{value})"``
- ``custom_header``: set the custom header (``X-OpenPIMS``) to the value
- ``cookie``: append ``x-openpims=<url-encoded value>`` to ``Cookie``
"""

from __future__ import annotations

import re
from functools import lru_cache
from urllib.parse import quote, urlsplit

from pydantic import BaseModel, ConfigDict, Field

from pimsctl.domain.types import ALL_RESOURCE_TYPES, Channel, HeaderOperation, ResourceType

COOKIE_NAME = "x-openpims"
DEFAULT_CUSTOM_HEADER = "X-OpenPIMS"
USER_AGENT_PRODUCT = "OpenPIMS/1.0"
DEFAULT_BASE_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Safari/605.1.15"
)


def user_agent_value(tagging_value: str, base: str = DEFAULT_BASE_USER_AGENT) -> str:
    """Full User-Agent string carrying *tagging_value* as a product comment."""
    return f"{base} {USER_AGENT_PRODUCT} (+{tagging_value})"


def cookie_pair(tagging_value: str) -> str:
    """``x-openpims=<value>`` with the value percent-encoded."""
    return f"{COOKIE_NAME}={quote(tagging_value, safe='')}"


def domain_url_filter(domain: str) -> str:
    return f"*://{domain}/*"


@lru_cache(maxsize=1024)
def _compile_filter(url_filter: str) -> re.Pattern[str]:
    """Translate a ``*``/``|`` URL filter into a regex."""
    text = url_filter
    prefix = suffix = ""
    if text.startswith("|"):
        prefix, text = "^", text[1:]
    if text.endswith("|"):
        suffix, text = "$", text[:-1]
    body = ".*".join(re.escape(part) for part in text.split("*"))
    return re.compile(prefix + body + suffix, re.IGNORECASE)


class _StoreModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class HeaderModification(_StoreModel):
    """One header edit inside a ``modifyHeaders`` action."""

    header: str
    operation: HeaderOperation
    value: str | None = None


class RuleAction(_StoreModel):
    type: str = "modifyHeaders"
    request_headers: tuple[HeaderModification, ...] = Field(alias="requestHeaders")


class RuleCondition(_StoreModel):
    """URL-matching condition.

    ``url_filter`` supports ``*`` wildcards and ``|`` start/end anchors.
    When ``request_domains`` is set, the request host must equal one of
    them exactly, so a domain's value never reaches its subdomains or any
    other host that happens to embed the filter text.
    """

    url_filter: str = Field(alias="urlFilter")
    resource_types: tuple[ResourceType, ...] = Field(
        default=ALL_RESOURCE_TYPES, alias="resourceTypes"
    )
    request_domains: tuple[str, ...] | None = Field(default=None, alias="requestDomains")

    def matches(self, url: str, resource_type: ResourceType = ResourceType.MAIN_FRAME) -> bool:
        """Match *url* the way the rule store would.

        A bare origin is matched as its root path.
        """
        parts = urlsplit(url)
        if not parts.path:
            url = parts._replace(path="/").geturl()
        if resource_type not in self.resource_types:
            return False
        if self.request_domains is not None:
            host = (parts.hostname or "").lower()
            if host not in self.request_domains:
                return False
        return _compile_filter(self.url_filter).search(url) is not None


class DeclarativeRule(_StoreModel):
    """A rule as held by the external rule store."""

    id: int
    priority: int = 1
    action: RuleAction
    condition: RuleCondition

    def to_payload(self) -> dict[str, object]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TaggingRule(BaseModel):
    """Engine-side rule: deliver *value* to *domain* over *channel*."""

    model_config = {"frozen": True}

    id: int
    domain: str
    channel: Channel
    value: str = Field(repr=False)

    def header_modification(
        self,
        *,
        custom_header: str = DEFAULT_CUSTOM_HEADER,
        base_user_agent: str = DEFAULT_BASE_USER_AGENT,
    ) -> HeaderModification:
        if self.channel is Channel.USER_AGENT:
            return HeaderModification(
                header="User-Agent",
                operation=HeaderOperation.SET,
                value=user_agent_value(self.value, base_user_agent),
            )
        if self.channel is Channel.COOKIE:
            return HeaderModification(
                header="Cookie",
                operation=HeaderOperation.APPEND,
                value=cookie_pair(self.value),
            )
        return HeaderModification(
            header=custom_header,
            operation=HeaderOperation.SET,
            value=self.value,
        )

    def to_declarative(
        self,
        *,
        priority: int = 1,
        custom_header: str = DEFAULT_CUSTOM_HEADER,
        base_user_agent: str = DEFAULT_BASE_USER_AGENT,
        resource_types: tuple[ResourceType, ...] = ALL_RESOURCE_TYPES,
    ) -> DeclarativeRule:
        condition = RuleCondition(
            url_filter=domain_url_filter(self.domain),
            resource_types=resource_types,
            request_domains=(self.domain,),
        )
        modification = self.header_modification(
            custom_header=custom_header, base_user_agent=base_user_agent
        )
        return DeclarativeRule(
            id=self.id,
            priority=priority,
            action=RuleAction(request_headers=(modification,)),
            condition=condition,
        )

