"""TokenResolver — credentials + domain → tagging value.

Derived deployments produce ``https://{derive(...)}.{app_domain}`` for the
current day; pre-built deployments return the stored value unchanged.

The resolver never caches: the day boundary can advance between two calls.
Callers that need one value twice within a unit of work (header and cookie
for the same request) must reuse a single resolution.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from pimsctl.domain.credentials import Credential, SessionState
from pimsctl.domain.derivation import day_epoch, derive
from pimsctl.domain.errors import MissingCredential

Clock = Callable[[], float]


def tagging_url(derived_value: str, app_domain: str) -> str:
    return f"https://{derived_value}.{app_domain}"


class TokenResolver:
    """Resolve tagging values against an injectable wall clock."""

    def __init__(self, *, clock: Clock = time.time) -> None:
        self._clock = clock

    def current_day(self) -> int:
        return day_epoch(self._clock())

    def resolve(self, source: SessionState | Credential | None, domain: str) -> str:
        """Return the tagging value for *domain*.

        Raises:
            MissingCredential: Logged out, or credential fields missing.
        """
        value, _day = self.resolve_with_day(source, domain)
        return value

    def resolve_with_day(
        self, source: SessionState | Credential | None, domain: str
    ) -> tuple[str, int]:
        """Like :meth:`resolve`, also returning the day epoch the value is valid for."""
        day = self.current_day()
        if isinstance(source, Credential):
            return self._derive_url(source, domain, day), day
        if source is None or not source.logged_in:
            msg = "Not logged in"
            raise MissingCredential(msg)
        if source.credential is not None:
            return self._derive_url(source.credential, domain, day), day
        if source.prebuilt_token:
            return source.prebuilt_token, day
        msg = "Logged in without userId/secret/appDomain or a pre-built token"
        raise MissingCredential(msg)

    @staticmethod
    def _derive_url(credential: Credential, domain: str, day: int) -> str:
        if not (credential.user_id and credential.secret and credential.app_domain):
            msg = "Credential is incomplete"
            raise MissingCredential(msg)
        return tagging_url(
            derive(credential.user_id, credential.secret, domain, day),
            credential.app_domain,
        )
