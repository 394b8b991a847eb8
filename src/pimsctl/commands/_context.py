"""AppContext — shared Click context for all commands.

Created once by the root CLI group and flows to all subcommands via
``@click.pass_obj``. Provides lazy Profile/runtime initialization and
centralized result emission (stdout/stderr routing + exit codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from pimsctl.output.formatters import OutputSettings, format_result

if TYPE_CHECKING:
    from pimsctl.config.settings import PimsSettings
    from pimsctl.infrastructure.profile import Profile
    from pimsctl.services.result import ServiceResult
    from pimsctl.services.runtime import TaggingRuntime


class AppContext:
    """Shared context flowing through Click's command hierarchy.

    The profile is opened on first use so ``--help`` and ``--version``
    never touch the database.
    """

    def __init__(self, settings: PimsSettings, *, sync: bool = False) -> None:
        self.settings = settings
        self._sync = sync
        self._profile: Profile | None = None
        self._runtime: TaggingRuntime | None = None

        from pimsctl.config.logging import configure_logging

        configure_logging(verbose=settings.verbose, log_json=settings.log_json)

    @property
    def profile(self) -> Profile:
        """The profile (created lazily on first access)."""
        if self._profile is None:
            from pimsctl.infrastructure.profile import Profile

            self._profile = Profile(self.settings)
            self._profile.init_event_bus(sync=self._sync or self.settings.events.sync)
        return self._profile

    @property
    def runtime(self) -> TaggingRuntime:
        """The tagging engine, attached to the stored session."""
        if self._runtime is None:
            from pimsctl.services.runtime import TaggingRuntime

            self._runtime = TaggingRuntime(self.profile)
            self._runtime.start()
        return self._runtime

    def emit(self, result: ServiceResult, *, exit_on_error: bool = True) -> None:
        """Format and output a ServiceResult with correct exit semantics.

        * Success (``result.ok``): writes to stdout, returns normally.
          Warnings go to stderr so they don't pollute piped output.
        * Failure: writes to stderr, exits with code 1 unless
          *exit_on_error* is False (the caller decides the exit code).
        """
        settings = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        output = format_result(result, settings=settings)
        if result.ok:
            click.echo(output)
            if not settings.json_output:
                for warning in result.warnings:
                    click.echo(f"WARNING: {warning}", err=True)
        else:
            click.echo(output, err=True)
            if exit_on_error:
                raise SystemExit(1)

    def close(self) -> None:
        if self._runtime is not None:
            self._runtime.close()
            self._runtime = None
        if self._profile is not None:
            self._profile.close()
            self._profile = None
