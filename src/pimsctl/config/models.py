"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, pimsctl.toml only contains overrides.
A fresh profile needs no config file at all.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from pimsctl.domain.ids import DEFAULT_ID_SPACE
from pimsctl.domain.rules import DEFAULT_BASE_USER_AGENT, DEFAULT_CUSTOM_HEADER
from pimsctl.domain.types import Channel, TaggingMode

DEFAULT_SERVER_URL = "https://me.openpims.de"


class LoginConfig(BaseModel):
    """[login] section."""

    model_config = {"frozen": True}

    server_url: str = DEFAULT_SERVER_URL
    timeout: float = 30.0


class TaggingConfig(BaseModel):
    """[tagging] section.

    ``channels`` lists the delivery mechanisms installed per domain. One
    channel per deployment is the norm; several may coexist.
    ``mode = "intercept"`` tags requests in flight even when the rule store
    could carry declarative rules.
    """

    model_config = {"frozen": True}

    mode: TaggingMode = TaggingMode.AUTO
    channels: tuple[Channel, ...] = (Channel.USER_AGENT,)
    custom_header: str = DEFAULT_CUSTOM_HEADER
    user_agent: str = DEFAULT_BASE_USER_AGENT


class RulesConfig(BaseModel):
    """[rules] section."""

    model_config = {"frozen": True}

    id_space: int = Field(default=DEFAULT_ID_SPACE, ge=1)
    max_rules: int = Field(default=5000, ge=1)
    priority: int = Field(default=1, ge=1)
    refresh_on_day_change: bool = True


class EventsConfig(BaseModel):
    """[events] section."""

    model_config = {"frozen": True}

    sync: bool = False
