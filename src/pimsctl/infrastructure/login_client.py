"""HTTP login client for the OpenPIMS server.

One GET with HTTP Basic credentials against a caller-supplied URL.
A 200 response carries either:

- JSON ``{"userId", "token", "domain"}`` → a :class:`Credential`
  (``token`` is the shared HMAC secret, ``domain`` the app domain), or
- a bare text body → a pre-built tagging value used as is.

The body kind is chosen by ``Content-Type``; a text body that looks like
a JSON object is still parsed as JSON, since some deployments send JSON
as ``text/plain``.
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from pimsctl.domain.credentials import Credential
from pimsctl.domain.errors import FormatError, TransportError, TransportKind

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0  # seconds
REQUIRED_FIELDS = ("userId", "token", "domain")


@dataclass(frozen=True)
class LoginOutcome:
    """Result of a successful login: exactly one of the two fields is set."""

    credential: Credential | None = None
    prebuilt_token: str | None = None


def basic_auth_header(email: str, password: str) -> str:
    """``Basic base64(email:password)`` over UTF-8."""
    raw = f"{email}:{password}".encode()
    return f"Basic {base64.b64encode(raw).decode('ascii')}"


def parse_credential(data: Any) -> Credential:
    """Validate a decoded JSON login body into a Credential."""
    if not isinstance(data, dict) or not all(data.get(field) for field in REQUIRED_FIELDS):
        msg = "Server response has the wrong format. Expected JSON with userId, token and domain."
        raise FormatError(msg)
    return Credential(
        user_id=str(data["userId"]),
        secret=str(data["token"]),
        app_domain=str(data["domain"]),
    )


def parse_login_response(response: httpx.Response) -> LoginOutcome:
    """Turn a 200 response into a LoginOutcome, or raise FormatError."""
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            data = response.json()
        except ValueError as exc:
            msg = "Server response is not valid JSON"
            raise FormatError(msg) from exc
        return LoginOutcome(credential=parse_credential(data))

    text = response.text.strip()
    if not text:
        msg = "No valid URL received from server"
        raise FormatError(msg)
    if text.startswith("{"):
        try:
            data = json.loads(text)
        except ValueError as exc:
            msg = "Server response has the wrong format. Expected JSON with userId, token and domain."
            raise FormatError(msg) from exc
        return LoginOutcome(credential=parse_credential(data))
    return LoginOutcome(prebuilt_token=text)


class LoginClient:
    """Performs the login exchange.

    Parameters:
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        *,
        timeout: float = REQUEST_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport

    def login(self, server_url: str, email: str, password: str) -> LoginOutcome:
        """Authenticate and return the server's credential or pre-built token.

        Raises:
            TransportError: Network failure or non-200 status.
            FormatError: 200 response whose body breaks the contract.
        """
        headers = {"Authorization": basic_auth_header(email, password)}
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.get(server_url, headers=headers)
        except httpx.InvalidURL as exc:
            raise TransportError(TransportKind.NETWORK_ERROR, "Invalid server URL") from exc
        except httpx.HTTPError as exc:
            logger.info("Login request failed: %s", type(exc).__name__)
            raise TransportError(TransportKind.NETWORK_ERROR, str(exc) or type(exc).__name__) from exc

        if response.status_code != 200:
            logger.info("Login rejected with status %s", response.status_code)
            raise TransportError.from_status(response.status_code)

        outcome = parse_login_response(response)
        logger.debug(
            "Login succeeded",
            extra={"deployment": "derived" if outcome.credential else "prebuilt"},
        )
        return outcome
