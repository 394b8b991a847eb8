"""Subcommand modules for pimsctl.

Provides register_commands(), which imports command modules lazily to
keep ``pimsctl --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all standalone commands on the root CLI group."""
    from pimsctl.commands.rules import rules
    from pimsctl.commands.session import login, logout, status
    from pimsctl.commands.tagging import observe, tag, token

    cli.add_command(login)
    cli.add_command(logout)
    cli.add_command(status)
    cli.add_command(observe)
    cli.add_command(tag)
    cli.add_command(token)
    cli.add_command(rules)
