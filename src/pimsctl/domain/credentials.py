"""Credential and persisted session-state models.

Two deployment shapes coexist in the session store:

- derived: ``{isLoggedIn, userId, secret, appDomain}`` — the token is
  derived per domain and per day from the credential.
- pre-built: ``{isLoggedIn, openPimsUrl}`` — the server hands out one
  opaque tagging value that is used as is.

INVARIANT: Credentials are replaced wholesale, never mutated in place.
The secret never appears in ``repr()`` or serialized output.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

# Storage keys shared with the host app (camelCase on the wire).
KEY_LOGGED_IN = "isLoggedIn"
KEY_USER_ID = "userId"
KEY_SECRET = "secret"
KEY_APP_DOMAIN = "appDomain"
KEY_PREBUILT = "openPimsUrl"
KEY_EMAIL = "email"
KEY_SERVER_URL = "serverUrl"

CREDENTIAL_KEYS: tuple[str, ...] = (KEY_USER_ID, KEY_SECRET, KEY_APP_DOMAIN)
SESSION_KEYS: tuple[str, ...] = (
    KEY_LOGGED_IN,
    *CREDENTIAL_KEYS,
    KEY_PREBUILT,
    KEY_EMAIL,
    KEY_SERVER_URL,
)


class Credential(BaseModel):
    """Identity triple returned by a successful login."""

    model_config = {"frozen": True}

    user_id: str
    secret: str = Field(repr=False, exclude=True)
    app_domain: str

    def fingerprint(self) -> str:
        """Non-secret identity of this credential (for change detection in logs)."""
        return f"{self.user_id}@{self.app_domain}"


class SessionState(BaseModel):
    """Snapshot of the persisted login state, in either deployment shape."""

    model_config = {"frozen": True}

    logged_in: bool = False
    credential: Credential | None = None
    prebuilt_token: str | None = None
    email: str | None = None
    server_url: str | None = None

    @property
    def is_active(self) -> bool:
        """True when logged in with something a resolver can use."""
        return self.logged_in and (self.credential is not None or bool(self.prebuilt_token))

    @classmethod
    def from_storage(cls, data: dict[str, Any]) -> SessionState:
        """Build a snapshot from raw session-store values.

        Partial credentials (any of userId/secret/appDomain missing or
        empty) yield ``credential=None`` rather than an error.
        """
        credential: Credential | None = None
        if all(data.get(key) for key in CREDENTIAL_KEYS):
            credential = Credential(
                user_id=str(data[KEY_USER_ID]),
                secret=str(data[KEY_SECRET]),
                app_domain=str(data[KEY_APP_DOMAIN]),
            )
        prebuilt = str(data.get(KEY_PREBUILT) or "").strip()
        return cls(
            logged_in=bool(data.get(KEY_LOGGED_IN)),
            credential=credential,
            prebuilt_token=prebuilt or None,
            email=data.get(KEY_EMAIL),
            server_url=data.get(KEY_SERVER_URL),
        )

    def to_storage(self) -> dict[str, Any]:
        """Raw key-value form for the session store (includes the secret)."""
        data: dict[str, Any] = {KEY_LOGGED_IN: self.logged_in}
        if self.credential is not None:
            data[KEY_USER_ID] = self.credential.user_id
            data[KEY_SECRET] = self.credential.secret
            data[KEY_APP_DOMAIN] = self.credential.app_domain
        if self.prebuilt_token:
            data[KEY_PREBUILT] = self.prebuilt_token
        if self.email:
            data[KEY_EMAIL] = self.email
        if self.server_url:
            data[KEY_SERVER_URL] = self.server_url
        return data
