"""Root CLI group for pimsctl with global flags and command registration."""

from __future__ import annotations

from pathlib import Path

import click

from pimsctl import __version__
from pimsctl.commands import register_commands
from pimsctl.commands._base import PimsGroup
from pimsctl.commands._context import AppContext
from pimsctl.config.settings import PimsSettings

_EXAMPLES = """\
  pimsctl login --email me@example.com
  pimsctl observe https://example.com/
  pimsctl --json status
  pimsctl -p ~/.openpims logout"""


@click.group(cls=PimsGroup, invoke_without_command=True, examples=_EXAMPLES)
@click.version_option(version=__version__, prog_name="pimsctl")
@click.option("--json", "json_output", is_flag=True, help="Structured JSON output.")
@click.option("-q", "--quiet", is_flag=True, help="Minimal output.")
@click.option("-v", "--verbose", is_flag=True, help="Detailed output with debug info.")
@click.option("--log-json", is_flag=True, help="Structured JSON log output to stderr.")
@click.option("-c", "--config", "config_path", default=None, help="Override config file path.")
@click.option(
    "-p",
    "--profile",
    "profile_root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Profile directory (default: the config file's directory, or CWD).",
)
@click.option("--sync", is_flag=True, help="Run events and plugin hooks inline.")
@click.pass_context
def cli(
    ctx: click.Context,
    json_output: bool,
    quiet: bool,
    verbose: bool,
    log_json: bool,
    config_path: str | None,
    profile_root: Path | None,
    sync: bool,
) -> None:
    """pimsctl — OpenPIMS request tagging CLI."""
    ctx.ensure_object(dict)
    settings = PimsSettings.from_cli(
        config_path=config_path,
        profile_root=profile_root,
        json_output=json_output,
        quiet=quiet,
        verbose=verbose,
        log_json=log_json,
    )
    if sync:
        settings = settings.model_copy(
            update={"events": settings.events.model_copy(update={"sync": True})}
        )
    app = AppContext(settings, sync=sync)
    ctx.obj = app
    ctx.call_on_close(app.close)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


register_commands(cli)
