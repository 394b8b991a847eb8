"""SessionService — login, logout, and the user-facing tagging operations.

Login and logout only write the session store. The storage watcher turns
those writes into reconciler events, exactly as a host app writing the
same keys would, so CLI and host hand-off share one code path.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

import httpx

from pimsctl.domain.credentials import SESSION_KEYS, SessionState
from pimsctl.domain.errors import FormatError, MissingCredential, TransportError
from pimsctl.domain.urls import host_from_url, normalize_domain
from pimsctl.services.base import BaseService
from pimsctl.services.reconciler import InstallOutcome, ReconcileReport
from pimsctl.services.result import ServiceError, ServiceResult

logger = logging.getLogger(__name__)


def _deployment(session: SessionState) -> str | None:
    if session.credential is not None:
        return "derived"
    if session.prebuilt_token:
        return "prebuilt"
    return None


def _summarize(reports: list[ReconcileReport]) -> dict[str, Any]:
    tagged: list[str] = []
    failed: list[str] = []
    removed: list[int] = []
    not_removed: list[int] = []
    for report in reports:
        tagged.extend(report.installed)
        failed.extend(report.failed)
        if report.removal is not None:
            removed.extend(report.removal.removed)
            not_removed.extend(report.removal.failed)
    return {
        "tagged": sorted(set(tagged)),
        "failed": sorted(set(failed)),
        "removed": len(removed),
        "not_removed": sorted(not_removed),
    }


def _domain_from_target(target: str) -> str | None:
    """Accept a URL or a bare host name."""
    if "://" in target or target.split(":", 1)[0].lower() in {"about", "chrome", "data"}:
        return host_from_url(target)
    return normalize_domain(target.split("/", 1)[0]) or None


class SessionService(BaseService):
    """Handles the login session and exposes the tagging engine."""

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def login(
        self,
        email: str,
        password: str,
        *,
        server_url: str | None = None,
        open_targets: Iterable[str] = (),
    ) -> ServiceResult:
        """Authenticate and store the returned identity.

        *open_targets* are pages already open in the host; their domains are
        tagged as soon as the session is active.
        """
        op = "login"
        url = server_url or self._profile.settings.login.server_url
        try:
            outcome = self._profile.login_client.login(url, email, password)
        except TransportError as exc:
            detail: dict[str, Any] = {"server_url": url}
            if exc.status_code is not None:
                detail["status_code"] = exc.status_code
            return ServiceResult(
                ok=False,
                op=op,
                error=ServiceError(code=exc.kind.value, message=str(exc), detail=detail),
            )
        except FormatError as exc:
            return ServiceResult(
                ok=False,
                op=op,
                error=ServiceError(code=FormatError.code, message=str(exc), detail={"server_url": url}),
            )

        session = SessionState(
            logged_in=True,
            credential=outcome.credential,
            prebuilt_token=outcome.prebuilt_token,
            email=email,
            server_url=url,
        )
        stored = session.to_storage()
        store = self._profile.session_store
        store.remove([key for key in SESSION_KEYS if key not in stored])
        store.set(stored)
        reports = self._runtime.settle()
        open_domains = [d for d in map(_domain_from_target, open_targets) if d]
        if open_domains:
            reports.append(self._runtime.reopen(open_domains))
        summary = _summarize(reports)

        deployment = _deployment(session) or "unknown"
        warnings: list[str] = [f"Could not tag {d}" for d in summary["failed"]]
        self._dispatch_event("post_login", {"deployment": deployment}, warnings)

        data: dict[str, Any] = {
            "email": email,
            "server_url": url,
            "deployment": deployment,
            "tagged": summary["tagged"],
        }
        if session.credential is not None:
            data["user_id"] = session.credential.user_id
            data["app_domain"] = session.credential.app_domain
        return ServiceResult(ok=True, op=op, data=data, warnings=warnings)

    def logout(self) -> ServiceResult:
        """Forget the identity and remove every tagging rule."""
        op = "logout"
        was_logged_in = self._runtime.watcher.snapshot().logged_in
        self._profile.session_store.remove(SESSION_KEYS)
        summary = _summarize(self._runtime.settle())

        warnings: list[str] = []
        if summary["not_removed"]:
            ids = ", ".join(str(i) for i in summary["not_removed"])
            warnings.append(f"Could not remove rules: {ids}")
        self._dispatch_event("post_logout", {}, warnings)
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "was_logged_in": was_logged_in,
                "removed": summary["removed"],
                "not_removed": summary["not_removed"],
            },
            warnings=warnings,
        )

    def status(self) -> ServiceResult:
        """Login state, deployment shape, and the domains currently tagged."""
        session = self._runtime.watcher.snapshot()
        settings = self._profile.settings
        data: dict[str, Any] = {
            "logged_in": session.logged_in,
            "deployment": _deployment(session),
            "email": session.email,
            "server_url": session.server_url,
            "channels": [c.value for c in settings.tagging.channels],
            "known_domains": sorted(self._runtime.reconciler.known_domains),
            "rule_count": len(self._profile.rule_store.get_dynamic_rules()),
            "day": self._runtime.resolver.current_day(),
        }
        if session.credential is not None:
            data["user_id"] = session.credential.user_id
            data["app_domain"] = session.credential.app_domain
        warnings: list[str] = []
        if session.logged_in and not session.is_active:
            warnings.append("Logged in, but the stored identity is incomplete")
        return ServiceResult(ok=True, op="status", data=data, warnings=warnings)

    # ------------------------------------------------------------------
    # Tagging operations
    # ------------------------------------------------------------------

    def observe(self, target: str) -> ServiceResult:
        """Report a visit to *target* (URL or host) and tag its domain."""
        op = "observe"
        domain = _domain_from_target(target)
        if domain is None:
            return ServiceResult(
                ok=True,
                op=op,
                data={"target": target, "domain": None, "outcome": InstallOutcome.SKIPPED.value},
                warnings=[f"Not a taggable web address: {target}"],
            )
        outcome = self._runtime.observe(domain)
        warnings: list[str] = []
        if outcome is InstallOutcome.SKIPPED:
            warnings.append(f"Not logged in; {domain} was not tagged (pass it to login --open)")
        if outcome is InstallOutcome.FAILED:
            return ServiceResult(
                ok=False,
                op=op,
                error=ServiceError(
                    code="RULE_STORE_ERROR",
                    message=f"Rule store rejected the rules for {domain}",
                    detail={"domain": domain, "rule_ids": self._runtime.reconciler.rule_ids_for(domain)},
                ),
            )
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "target": target,
                "domain": domain,
                "outcome": outcome.value,
                "rule_ids": self._runtime.reconciler.rule_ids_for(domain),
            },
            warnings=warnings,
        )

    def rules(self, *, show_values: bool = False) -> ServiceResult:
        """List the rules in the store."""
        items: list[dict[str, Any]] = []
        for rule in self._profile.rule_store.get_dynamic_rules():
            domains = rule.condition.request_domains or ()
            headers = []
            for mod in rule.action.request_headers:
                entry: dict[str, Any] = {"header": mod.header, "operation": mod.operation.value}
                if show_values:
                    entry["value"] = mod.value
                headers.append(entry)
            items.append(
                {
                    "id": rule.id,
                    "priority": rule.priority,
                    "domain": domains[0] if domains else None,
                    "url_filter": rule.condition.url_filter,
                    "headers": headers,
                }
            )
        return ServiceResult(ok=True, op="rules", data={"count": len(items), "items": items})

    def tag(self, url: str, *, headers: dict[str, str] | None = None) -> ServiceResult:
        """Show the headers an outgoing GET to *url* would carry."""
        op = "tag"
        if host_from_url(url) is None:
            return ServiceResult(
                ok=False,
                op=op,
                error=ServiceError(code="INVALID_URL", message=f"Not a taggable web address: {url}"),
            )
        tagger = self._runtime.tagger()
        request = httpx.Request("GET", url, headers=headers or {})
        tagger.tag(request)
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "url": url,
                "tagger": type(tagger).__name__,
                "headers": {k: v for k, v in request.headers.items() if k.lower() != "host"},
            },
        )

    def token(self, domain: str) -> ServiceResult:
        """Resolve today's tagging value for *domain*."""
        op = "token"
        domain = normalize_domain(domain)
        try:
            value, day = self._runtime.resolver.resolve_with_day(
                self._runtime.watcher.snapshot(), domain
            )
        except MissingCredential as exc:
            return ServiceResult(
                ok=False,
                op=op,
                error=ServiceError(code="NOT_LOGGED_IN", message=str(exc)),
            )
        return ServiceResult(ok=True, op=op, data={"domain": domain, "day": day, "value": value})
