"""Delivery channels, resource types, and header operations.

A channel is the mechanism that carries the tagging value to the
destination server. Rule ids are offset per channel, so the declaration
order of :class:`Channel` is part of the rule-id contract.
"""

from __future__ import annotations

from enum import StrEnum


class Channel(StrEnum):
    """Delivery mechanism for the tagging value."""

    USER_AGENT = "user_agent"
    COOKIE = "cookie"
    CUSTOM_HEADER = "custom_header"

    @property
    def index(self) -> int:
        """Stable position of this channel, used to partition the rule-id space."""
        return list(Channel).index(self)


class ResourceType(StrEnum):
    """Request resource types a tagging rule applies to."""

    MAIN_FRAME = "main_frame"
    SUB_FRAME = "sub_frame"
    XMLHTTPREQUEST = "xmlhttprequest"
    SCRIPT = "script"
    STYLESHEET = "stylesheet"
    IMAGE = "image"
    FONT = "font"
    MEDIA = "media"
    OTHER = "other"


ALL_RESOURCE_TYPES: tuple[ResourceType, ...] = tuple(ResourceType)


class HeaderOperation(StrEnum):
    """Header modification operations understood by the rule store."""

    SET = "set"
    APPEND = "append"
    REMOVE = "remove"


class TaggingMode(StrEnum):
    """How outgoing requests get the tagging value."""

    AUTO = "auto"  # declarative rules when the store supports them
    INTERCEPT = "intercept"
