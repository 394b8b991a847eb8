"""Error taxonomy for the tagging engine and its login collaborator.

``TransportError`` and ``FormatError`` abort only a login attempt and are
turned into user-facing ServiceResult errors. ``MissingCredential`` means
"do not tag this domain" and never escapes the reconciler.
``RuleStoreError`` is logged and leaves the affected domain untracked.
"""

from __future__ import annotations

from enum import StrEnum


class PimsError(Exception):
    """Base class for all pimsctl errors."""


class TransportKind(StrEnum):
    """Classification of a failed login exchange."""

    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    ACCESS_DENIED = "ACCESS_DENIED"
    SERVICE_UNREACHABLE = "SERVICE_UNREACHABLE"
    SERVER_ERROR = "SERVER_ERROR"
    LOGIN_FAILED = "LOGIN_FAILED"
    NETWORK_ERROR = "NETWORK_ERROR"


_STATUS_MESSAGES: dict[TransportKind, str] = {
    TransportKind.INVALID_CREDENTIALS: "Invalid email or password",
    TransportKind.ACCESS_DENIED: "Access denied",
    TransportKind.SERVICE_UNREACHABLE: "Login service unreachable",
    TransportKind.SERVER_ERROR: "Server error, please try again later",
}


def classify_status(status_code: int) -> TransportKind:
    """Map a non-200 login status code to its error kind."""
    if status_code == 401:
        return TransportKind.INVALID_CREDENTIALS
    if status_code == 403:
        return TransportKind.ACCESS_DENIED
    if status_code == 404:
        return TransportKind.SERVICE_UNREACHABLE
    if 500 <= status_code <= 599:
        return TransportKind.SERVER_ERROR
    return TransportKind.LOGIN_FAILED


class TransportError(PimsError):
    """Login network or HTTP failure, classified by status code."""

    def __init__(
        self,
        kind: TransportKind,
        message: str | None = None,
        *,
        status_code: int | None = None,
    ) -> None:
        if message is None:
            message = _STATUS_MESSAGES.get(kind) or f"Login failed (status: {status_code})"
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @classmethod
    def from_status(cls, status_code: int) -> TransportError:
        return cls(classify_status(status_code), status_code=status_code)


class FormatError(PimsError):
    """Login succeeded at the HTTP level but the body does not match the contract."""

    code = "BAD_RESPONSE_FORMAT"


class MissingCredential(PimsError):
    """Resolution attempted while logged out or with partial credentials."""


class RuleStoreError(PimsError):
    """The external rule store rejected an add or remove."""

    def __init__(self, message: str, *, rule_ids: list[int] | None = None) -> None:
        super().__init__(message)
        self.rule_ids = rule_ids or []
