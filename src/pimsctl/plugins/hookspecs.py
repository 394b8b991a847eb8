"""Pluggy hook specifications for pimsctl lifecycle events.

Hooks observe the tagging engine; they cannot change it. Payloads carry
domains, channels and rule ids, never credentials or tagging values.
"""

from __future__ import annotations

import pluggy

hookspec = pluggy.HookspecMarker("pimsctl")


class PimsctlHookSpec:
    """Hook specifications for the pimsctl plugin system."""

    @hookspec
    def post_rule_installed(self, domain: str | None, channel: str, rule_id: int) -> None:
        """Called after a tagging rule was added to the rule store."""

    @hookspec
    def post_rules_cleared(self, removed: list[int], failed: list[int]) -> None:
        """Called after a bulk removal (logout or rotation)."""

    @hookspec
    def post_login(self, deployment: str) -> None:
        """Called after a successful login. *deployment* is ``derived`` or ``prebuilt``."""

    @hookspec
    def post_logout(self) -> None:
        """Called after logout completed and all rules were removed."""
