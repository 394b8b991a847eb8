"""Command: list installed tagging rules."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from pimsctl.commands._base import PimsCommand

if TYPE_CHECKING:
    from pimsctl.commands._context import AppContext


@click.command(
    cls=PimsCommand,
    examples="""\
  pimsctl rules
  pimsctl rules --show-values
  pimsctl -q rules""",
)
@click.option("--show-values", is_flag=True, help="Include header values.")
@click.pass_obj
def rules(app: AppContext, show_values: bool) -> None:
    """List the rules in the rule store."""
    from pimsctl.services.session import SessionService

    app.emit(SessionService(app.runtime).rules(show_values=show_values))
