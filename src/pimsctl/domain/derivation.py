"""Deterministic per-domain token derivation with daily rotation.

The message is ``user_id + domain + str(day)`` with no separators, signed
with HMAC-SHA256 keyed by the shared secret. The lowercase hex digest is
truncated to 32 characters (128 bits) so it fits a DNS label.

INVARIANT: Field order and the absence of separators are part of the wire
contract with the server. Changing either changes every derived value.
"""

from __future__ import annotations

import hashlib
import hmac
import time

SECONDS_PER_DAY = 86400
TOKEN_LENGTH = 32

__all__ = ["SECONDS_PER_DAY", "TOKEN_LENGTH", "day_epoch", "derive"]


def day_epoch(now: float | None = None) -> int:
    """Integer day number since the Unix epoch for *now* (default: wall clock)."""
    if now is None:
        now = time.time()
    return int(now) // SECONDS_PER_DAY


def derive(user_id: str, secret: str, domain: str, day: int) -> str:
    """Derive the 32-hex-char token for *domain* on *day*.

    Pure and side-effect free; safe to call from any thread.

    Examples:
        >>> derive("u1", "s1", "example.com", 19000)
        'b69f20eb9658a3d30405bd07be021ffb'
    """
    message = f"{user_id}{domain}{day}"
    digest = hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256)
    return digest.hexdigest()[:TOKEN_LENGTH]
