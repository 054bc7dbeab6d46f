"""Hello: example Parley plugin.

Demonstrates how a plugin registers a tool.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from parley.agent.tools import Tool, ToolRegistry
from parley.extensions.base import ParleyPlugin


class HelloTool(Tool):
    """A simple greeting tool."""

    @property
    def name(self) -> str:
        return "hello"

    @property
    def description(self) -> str:
        return "Greet someone. An example tool demonstrating the plugin format."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "name": {
                    "type": "string",
                    "description": "Who to greet. Default: World",
                },
            },
            "required": [],
        }

    async def execute(self, name: str = "World", **_: Any) -> str:
        return json.dumps({
            "greeting": f"Hello, {name}! It is {datetime.now():%H:%M:%S}.",
            "tip": "Drop more plugins into the plugins directory and rescan to load them.",
        })


class HelloPlugin(ParleyPlugin):
    """Example plugin that registers the 'hello' tool."""

    @property
    def name(self) -> str:
        return "hello"

    @property
    def description(self) -> str:
        return "Example plugin that says hello"

    async def on_load(self, registry: ToolRegistry) -> list[Tool]:
        return [HelloTool()]
