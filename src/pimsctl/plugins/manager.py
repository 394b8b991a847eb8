"""Plugin loading for the pimsctl lifecycle hooks.

Plugins come from the ``pimsctl.plugins`` entry-point group and from
single-file modules in ``<profile>/.pimsctl/plugins/``. A plugin is a
module or class whose ``@hookimpl`` functions implement at least one
:class:`PimsctlHookSpec` hook and nothing else. Plugins that fail to
import or validate are logged and skipped.
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
import sys
from pathlib import Path
from types import ModuleType

import pluggy

from pimsctl.plugins.hookspecs import PimsctlHookSpec

PROJECT_NAME = "pimsctl"
ENTRY_POINT_GROUP = "pimsctl.plugins"
LOCAL_MODULE_PREFIX = "pimsctl_local_plugin_"

HOOK_NAMES = frozenset(name for name in vars(PimsctlHookSpec) if not name.startswith("_"))

logger = logging.getLogger(__name__)


def marked_hooks(plugin: object) -> set[str]:
    """Public attribute names of *plugin* carrying the pimsctl ``@hookimpl`` marker."""
    marker = f"{PROJECT_NAME}_impl"
    return {
        name
        for name in dir(plugin)
        if not name.startswith("_") and getattr(getattr(plugin, name, None), marker, None) is not None
    }


class PluginManager:
    """Validated registry of lifecycle plugins over a pluggy manager."""

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(PimsctlHookSpec)

    @property
    def hook(self) -> pluggy.HookRelay:
        return self._pm.hook

    def names(self) -> list[str]:
        return sorted(name for name, _plugin in self._pm.list_name_plugin())

    def register(self, plugin: object, name: str | None = None) -> str:
        """Register *plugin* and return the name it was registered under.

        Raises:
            pluggy.PluginValidationError: The plugin implements no pimsctl
                hook, marks an unknown hook, or a hook signature asks for
                arguments the hook does not provide.
        """
        marked = marked_hooks(plugin)
        unknown = marked - HOOK_NAMES
        if unknown:
            msg = f"unknown pimsctl hooks: {', '.join(sorted(unknown))}"
            raise pluggy.PluginValidationError(plugin, msg)
        if not marked:
            msg = "implements no pimsctl hook"
            raise pluggy.PluginValidationError(plugin, msg)
        resolved = name or getattr(plugin, "__name__", type(plugin).__name__)
        self._pm.register(plugin, name=resolved)
        logger.debug("Registered plugin %s (%s)", resolved, ", ".join(sorted(marked)))
        return resolved

    def load(self, *, local_dir: Path | None = None) -> list[str]:
        """Load entry-point plugins, then the modules in *local_dir*."""
        self._load_entry_points()
        if local_dir is not None and local_dir.is_dir():
            for py_file in sorted(local_dir.glob("*.py")):
                if not py_file.name.startswith("_"):
                    self._load_file(py_file)
        return self.names()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load_entry_points(self) -> None:
        self._pm.load_setuptools_entrypoints(ENTRY_POINT_GROUP)
        # Entry points may name a class; hooks need an instance to bind ``self``.
        for plugin in [p for p in self._pm.get_plugins() if inspect.isclass(p)]:
            name = self._pm.get_name(plugin) or plugin.__name__
            self._pm.unregister(plugin)
            self._register_quietly(plugin, name, instantiate=True)

    def _load_file(self, py_file: Path) -> None:
        module = _import_file(py_file)
        if module is None:
            return
        label = f"local:{py_file.stem}"
        if marked_hooks(module):
            self._register_quietly(module, label)
        for cls_name, cls in inspect.getmembers(module, inspect.isclass):
            if cls.__module__ == module.__name__ and marked_hooks(cls):
                self._register_quietly(cls, f"{label}.{cls_name}", instantiate=True)

    def _register_quietly(self, plugin: object, name: str, *, instantiate: bool = False) -> None:
        try:
            self.register(plugin() if instantiate else plugin, name=name)  # type: ignore[operator]
        except Exception:
            logger.warning("Skipping plugin %s", name, exc_info=True)


def _import_file(py_file: Path) -> ModuleType | None:
    module_name = f"{LOCAL_MODULE_PREFIX}{py_file.stem}"
    spec = importlib.util.spec_from_file_location(module_name, py_file)
    if spec is None or spec.loader is None:
        logger.warning("Cannot import plugin file %s", py_file)
        return None
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception:
        logger.warning("Failed to load local plugin %s", py_file, exc_info=True)
        sys.modules.pop(module_name, None)
        return None
    return module
