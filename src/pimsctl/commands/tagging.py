"""Commands: observe, tag, token."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from pimsctl.commands._base import PimsCommand

if TYPE_CHECKING:
    from pimsctl.commands._context import AppContext


@click.command(
    cls=PimsCommand,
    examples="""\
  pimsctl observe https://example.com/page
  pimsctl observe example.com news.example.org""",
)
@click.argument("targets", nargs=-1, required=True)
@click.pass_obj
def observe(app: AppContext, targets: tuple[str, ...]) -> None:
    """Report visits to TARGETS (URLs or host names) and tag their domains."""
    from pimsctl.services.session import SessionService

    svc = SessionService(app.runtime)
    failed = False
    for target in targets:
        result = svc.observe(target)
        app.emit(result, exit_on_error=False)
        failed = failed or not result.ok
    if failed:
        raise SystemExit(1)


def _parse_header(_ctx: click.Context, _param: click.Parameter, values: tuple[str, ...]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for raw in values:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            msg = f"Expected 'Name: value', got {raw!r}"
            raise click.BadParameter(msg)
        headers[name.strip()] = value.strip()
    return headers


@click.command(
    cls=PimsCommand,
    examples="""\
  pimsctl tag https://example.com/
  pimsctl tag https://example.com/ -H 'Cookie: session=1'""",
)
@click.argument("url")
@click.option(
    "-H",
    "--header",
    "headers",
    multiple=True,
    callback=_parse_header,
    help="Request header 'Name: value' (repeatable).",
)
@click.pass_obj
def tag(app: AppContext, url: str, headers: dict[str, str]) -> None:
    """Show the headers a request to URL would carry."""
    from pimsctl.services.session import SessionService

    app.emit(SessionService(app.runtime).tag(url, headers=headers))


@click.command(
    cls=PimsCommand,
    examples="""\
  pimsctl token example.com
  pimsctl -q token example.com""",
)
@click.argument("domain")
@click.pass_obj
def token(app: AppContext, domain: str) -> None:
    """Print today's tagging value for DOMAIN."""
    from pimsctl.services.session import SessionService

    app.emit(SessionService(app.runtime).token(domain))
