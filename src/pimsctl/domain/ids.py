"""Deterministic rule ids for the flat external rule store.

The rule store can only be updated by id, never queried by value, so the
id for a given ``(domain, channel)`` must be recomputable on demand:

- 32-bit string hash of the domain (Java ``String.hashCode`` over UTF-16
  code units), absolute value, folded into ``[1, id_space]``.
- Offset by ``channel.index * id_space`` so channels never share an id.

Collisions between unrelated domains are possible and resolve
last-write-wins: the later observation overwrites the earlier domain's rule.

INVARIANT: IDs are a pure function of (domain, channel, id_space).
"""

from __future__ import annotations

from pimsctl.domain.types import Channel

DEFAULT_ID_SPACE = 10000


def string_hash(text: str) -> int:
    """Signed 32-bit rolling hash (``h = h * 31 + unit``) over UTF-16 code units.

    Examples:
        >>> string_hash("")
        0
        >>> string_hash("example.com")
        -1944013059
    """
    raw = text.encode("utf-16-le")
    h = 0
    for i in range(0, len(raw), 2):
        unit = raw[i] | (raw[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def rule_id(
    domain: str,
    channel: Channel = Channel.USER_AGENT,
    *,
    id_space: int = DEFAULT_ID_SPACE,
) -> int:
    """Stable rule id for *domain* on *channel*.

    Examples:
        >>> rule_id("example.com")
        3060
        >>> rule_id("example.com", Channel.COOKIE)
        13060
    """
    if id_space < 1:
        msg = f"id_space must be positive, got {id_space}"
        raise ValueError(msg)
    base = abs(string_hash(domain)) % id_space + 1
    return channel.index * id_space + base


def id_ceiling(id_space: int = DEFAULT_ID_SPACE) -> int:
    """Largest id any channel can produce for *id_space*."""
    return len(Channel) * id_space
