"""Operation-specific Rich renderers for ServiceResult.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

import json as _json
from typing import TYPE_CHECKING, Any

from rich.table import Table
from rich.text import Text

from pimsctl.output.console import create_console, get_output, style_for_outcome

if TYPE_CHECKING:
    from rich.console import Console

    from pimsctl.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich."""
    console = create_console()

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op} — {msg}"
    if result.op == "token":
        return str(result.data.get("value", ""))
    items = result.data.get("items")
    if items and isinstance(items, list):
        return "\n".join(str(item["id"]) for item in items if isinstance(item, dict) and "id" in item)
    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _status_line(console: Console, result: ServiceResult) -> None:
    label = Text("OK", style="pims.ok")
    op = Text(f"  {result.op}", style="pims.op")
    console.print(label, op, end="")
    console.print()


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}: ", style="pims.key")
    if isinstance(value, (dict, list)):
        value = _json.dumps(value, separators=(",", ":"))
    if key.endswith("_id") or key == "rule_ids":
        v = Text(str(value), style="pims.id")
    elif key == "domain":
        v = Text(str(value), style="pims.domain")
    elif key == "outcome":
        v = Text(str(value), style=style_for_outcome(str(value)))
    elif key == "value":
        v = Text(str(value), style="pims.value")
    else:
        v = Text(str(value))
    console.print(k, v, sep="", end="")
    console.print()


def _render_meta(console: Console, result: ServiceResult) -> None:
    if not result.meta:
        return
    console.print()
    console.print(Text("  meta:", style="dim"))
    for k, v in result.meta.items():
        console.print(f"    {k}: {v}")


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    label = Text("ERROR", style="pims.error")
    op = Text(f"  {result.op}", style="pims.op")
    code = Text(f" [{err.code}]" if err else "", style="dim")
    console.print(label, op, code, Text(" — "), msg)

    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(f"    {k}: {v}")


# ── Session renderers ─────────────────────────────────────────────────


def _render_login(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    for key in ("email", "server_url", "deployment", "user_id", "app_domain"):
        if result.data.get(key) is not None:
            _field(console, key, result.data[key])
    tagged = result.data.get("tagged") or []
    if tagged:
        _field(console, "tagged", ", ".join(tagged))
    if verbose:
        _render_meta(console, result)


def _render_logout(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    _field(console, "removed", result.data.get("removed", 0))
    if result.data.get("not_removed"):
        _field(console, "not_removed", result.data["not_removed"])


def _render_status(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    data = result.data
    _status_line(console, result)
    state = Text("logged in", style="pims.ok") if data.get("logged_in") else Text("logged out")
    console.print(Text("  session: ", style="pims.key"), state, sep="", end="")
    console.print()
    for key in ("deployment", "email", "server_url", "user_id", "app_domain", "channels", "rule_count"):
        if data.get(key) is not None:
            _field(console, key, data[key])
    if verbose:
        _field(console, "day", data.get("day"))
    domains = data.get("known_domains") or []
    if domains:
        console.print(Text("  known domains:", style="pims.key"))
        for domain in domains:
            console.print(Text(f"    {domain}", style="pims.domain"))


def _render_observe(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    for key in ("domain", "outcome", "rule_ids"):
        if result.data.get(key) is not None:
            _field(console, key, result.data[key])


def _render_rules(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    items = result.data.get("items") or []
    if not items:
        console.print(Text("  No rules installed.", style="dim"))
        return
    show_values = any("value" in h for item in items for h in item.get("headers", []))
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("ID", style="pims.id", no_wrap=True, justify="right")
    table.add_column("Domain", style="pims.domain")
    table.add_column("Header")
    table.add_column("Operation")
    if show_values:
        table.add_column("Value", style="pims.value")
    if verbose:
        table.add_column("Priority", justify="right")
        table.add_column("URL filter", style="dim")
    for item in items:
        for header in item.get("headers", []):
            row = [
                str(item.get("id", "")),
                str(item.get("domain") or ""),
                str(header.get("header", "")),
                str(header.get("operation", "")),
            ]
            if show_values:
                row.append(str(header.get("value") or ""))
            if verbose:
                row.extend([str(item.get("priority", "")), str(item.get("url_filter", ""))])
            table.add_row(*row)
    console.print(table)


def _render_tag(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    _field(console, "url", result.data.get("url"))
    if verbose:
        _field(console, "tagger", result.data.get("tagger"))
    table = Table(show_header=True, pad_edge=False, expand=False)
    table.add_column("Header", style="pims.key")
    table.add_column("Value")
    for name, value in (result.data.get("headers") or {}).items():
        table.add_row(name, value)
    console.print(table)


def _render_token(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    for key in ("domain", "day", "value"):
        _field(console, key, result.data.get(key))


# ── Generic fallback ──────────────────────────────────────────────────


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Fallback renderer: status line + all data as key-value pairs."""
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Any] = {
    "login": _render_login,
    "logout": _render_logout,
    "status": _render_status,
    "observe": _render_observe,
    "rules": _render_rules,
    "tag": _render_tag,
    "token": _render_token,
}
