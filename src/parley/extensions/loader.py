"""Plugin loader: discovers plugins in the plugins directory and re-scans them.

Each plugin is a directory with:
- plugin.yaml (optional metadata: name, description, version, entry_point)
- __init__.py or <entry_point>.py with a ParleyPlugin subclass

A rescan imports every plugin again under a fresh module name, so edited
source takes effect without restarting the process.
"""

from __future__ import annotations

import importlib.util
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

from parley.agent.tools import ToolRegistry
from parley.extensions.base import ParleyPlugin

logger = structlog.get_logger()


@dataclass
class LoadedPlugin:
    plugin: ParleyPlugin
    module_name: str
    tool_names: list[str] = field(default_factory=list)


class PluginLoader:
    """Loads plugins into a tool registry and keeps track of what they added."""

    def __init__(self, plugins_dir: str | Path, registry: ToolRegistry) -> None:
        self.plugins_dir = Path(plugins_dir)
        self.registry = registry
        self.generation = 0
        self.loaded: dict[str, LoadedPlugin] = {}

    async def load_all(self) -> list[str]:
        """Discover and load every plugin. Returns loaded plugin names."""
        self.generation += 1
        names: list[str] = []

        if not self.plugins_dir.exists():
            logger.info("plugins.dir_not_found", path=str(self.plugins_dir))
            self.plugins_dir.mkdir(parents=True, exist_ok=True)
            return names

        for plugin_dir in sorted(self.plugins_dir.iterdir()):
            if not plugin_dir.is_dir():
                continue
            if plugin_dir.name.startswith((".", "_")):
                continue

            try:
                loaded = await self._load_single(plugin_dir)
            except Exception as e:
                logger.error("plugins.load_failed", dir=plugin_dir.name, error=str(e))
                continue
            if loaded:
                self.loaded[loaded.plugin.name] = loaded
                names.append(loaded.plugin.name)
                logger.info(
                    "plugins.loaded",
                    name=loaded.plugin.name,
                    version=loaded.plugin.version,
                    tools=loaded.tool_names,
                )

        return names

    async def rescan(self) -> list[str]:
        """Unload every plugin, drop its tools, and load the directory again."""
        for name, loaded in list(self.loaded.items()):
            try:
                await loaded.plugin.on_unload()
            except Exception as e:
                logger.warning("plugins.unload_failed", name=name, error=str(e))
            for tool_name in loaded.tool_names:
                self.registry.unregister(tool_name)
            sys.modules.pop(loaded.module_name, None)
        self.loaded.clear()

        names = await self.load_all()
        logger.info("plugins.rescanned", generation=self.generation, plugins=names)
        return names

    async def _load_single(self, plugin_dir: Path) -> LoadedPlugin | None:
        meta_path = plugin_dir / "plugin.yaml"
        meta: dict[str, Any] = {}
        if meta_path.exists():
            with open(meta_path) as f:
                meta = yaml.safe_load(f) or {}

        entry_point = meta.get("entry_point", "__init__")
        module_file = plugin_dir / f"{entry_point}.py"
        if not module_file.exists():
            logger.warning("plugins.no_entry", dir=plugin_dir.name, expected=str(module_file))
            return None

        module_name = f"parley_plugin_{plugin_dir.name}_g{self.generation}"
        spec = importlib.util.spec_from_file_location(module_name, module_file)
        if not spec or not spec.loader:
            return None

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception:
            sys.modules.pop(module_name, None)
            raise

        plugin_class = None
        for attr_name in dir(module):
            attr = getattr(module, attr_name)
            if (
                isinstance(attr, type)
                and issubclass(attr, ParleyPlugin)
                and attr is not ParleyPlugin
            ):
                plugin_class = attr
                break

        if not plugin_class:
            logger.warning("plugins.no_class", dir=plugin_dir.name)
            sys.modules.pop(module_name, None)
            return None

        plugin = plugin_class()
        loaded = LoadedPlugin(plugin=plugin, module_name=module_name)
        for tool in await plugin.on_load(self.registry) or []:
            self.registry.register(tool)
            loaded.tool_names.append(tool.name)
        return loaded
