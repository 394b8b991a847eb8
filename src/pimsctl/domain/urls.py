"""Host extraction from navigated URLs.

Only web pages count as domain observations. Browser-internal pages
(``about:``, ``chrome:``, extension pages, ...) are skipped.
"""

from __future__ import annotations

from urllib.parse import urlsplit

WEB_SCHEMES = frozenset({"http", "https", "ws", "wss"})


def host_from_url(url: str) -> str | None:
    """Return the lowercase hostname of *url*, or None if it is not taggable.

    Examples:
        >>> host_from_url("https://Example.com/path?q=1")
        'example.com'
        >>> host_from_url("about:blank") is None
        True
    """
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None
    if parts.scheme.lower() not in WEB_SCHEMES:
        return None
    return parts.hostname or None


def normalize_domain(domain: str) -> str:
    """Lowercase, strip whitespace and any trailing dot."""
    return domain.strip().lower().rstrip(".")
