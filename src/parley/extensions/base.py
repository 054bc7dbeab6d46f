"""Plugin base class: the contract for Parley extensions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from parley.agent.tools import Tool, ToolRegistry


class ParleyPlugin(ABC):
    """Base class for all Parley plugins.

    To create a plugin:
    1. Create a directory in <plugins_dir>/<name>/
    2. Optionally add a plugin.yaml with metadata (entry_point, version)
    3. Add an __init__.py exporting a class that inherits ParleyPlugin
    4. Implement on_load() to return the plugin's tools
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique plugin name."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """What this plugin does."""
        ...

    @property
    def version(self) -> str:
        return "0.1.0"

    async def on_load(self, registry: ToolRegistry) -> list[Tool]:
        """Called when the plugin is loaded. Return the tools to register."""
        return []

    async def on_unload(self) -> None:
        """Called before a rescan replaces the plugin. Clean up resources."""
        pass

    def __repr__(self) -> str:
        return f"<Plugin: {self.name} v{self.version}>"
