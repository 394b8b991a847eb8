"""Commands: login, logout, status."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from pimsctl.commands._base import PimsCommand

if TYPE_CHECKING:
    from pimsctl.commands._context import AppContext


@click.command(
    cls=PimsCommand,
    examples="""\
  pimsctl login --email me@example.com
  pimsctl login --email me@example.com --server-url https://pims.example.org/login
  pimsctl login --email me@example.com --open https://example.com/ --open news.example.org
  PIMSCTL_PASSWORD=... pimsctl --json login --email me@example.com""",
)
@click.option("--email", prompt=True, help="Account email.")
@click.option(
    "--password",
    prompt=True,
    hide_input=True,
    envvar="PIMSCTL_PASSWORD",
    help="Account password (prompted when omitted).",
)
@click.option("--server-url", default=None, help="Login URL (overrides [login] server_url).")
@click.option(
    "--open",
    "open_targets",
    multiple=True,
    metavar="URL",
    help="Page already open in the host; its domain is tagged right away (repeatable).",
)
@click.pass_obj
def login(
    app: AppContext, email: str, password: str, server_url: str | None, open_targets: tuple[str, ...]
) -> None:
    """Log in and start tagging requests."""
    from pimsctl.services.session import SessionService

    svc = SessionService(app.runtime)
    app.emit(svc.login(email, password, server_url=server_url, open_targets=open_targets))


@click.command(cls=PimsCommand, examples="  pimsctl logout")
@click.pass_obj
def logout(app: AppContext) -> None:
    """Log out and remove every tagging rule."""
    from pimsctl.services.session import SessionService

    app.emit(SessionService(app.runtime).logout())


@click.command(
    cls=PimsCommand,
    examples="""\
  pimsctl status
  pimsctl --json status""",
)
@click.pass_obj
def status(app: AppContext) -> None:
    """Show login state and the domains currently tagged."""
    from pimsctl.services.session import SessionService

    app.emit(SessionService(app.runtime).status())
