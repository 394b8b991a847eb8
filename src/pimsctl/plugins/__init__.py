"""Extension layer — plugin system via pluggy.

Plugins load from the ``pimsctl.plugins`` entry points and the profile's
``.pimsctl/plugins/`` directory.
INVARIANT: Plugin failures are warnings, never errors.
"""

from pimsctl.plugins.event_bus import EventBus
from pimsctl.plugins.manager import PluginManager

__all__ = ["EventBus", "PluginManager"]
