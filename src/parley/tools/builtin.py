"""Register the tools every Parley process ships with."""

from __future__ import annotations

from pathlib import Path

from parley.agent.tools import ToolRegistry
from parley.config import ParleyConfig
from parley.tools.clock import DateTimeTool
from parley.tools.files import ListFilesTool, ReadFileTool, Workspace, WriteFileTool
from parley.tools.shell import ShellTool
from parley.tools.web_search import WebSearchTool


def register_builtin_tools(registry: ToolRegistry, config: ParleyConfig) -> None:
    registry.register(DateTimeTool())
    registry.register(WebSearchTool())
    if config.shell.enabled:
        registry.register(ShellTool(config.shell))

    workspace_dir = Path(config.workspace_dir)
    workspace_dir.mkdir(parents=True, exist_ok=True)
    workspace = Workspace(workspace_dir)
    registry.register(ReadFileTool(workspace))
    registry.register(WriteFileTool(workspace))
    registry.register(ListFilesTool(workspace))
