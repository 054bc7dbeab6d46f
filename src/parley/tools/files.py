"""File tools: read, write, and list files inside the workspace directory."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog

from parley.agent.tools import Tool, error_payload

logger = structlog.get_logger()

MAX_READ_CHARS = 50_000
MAX_LIST_ENTRIES = 200


class Workspace:
    """Resolves model-supplied paths against one root, refusing escapes."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def resolve(self, user_path: str) -> Path | None:
        full = (self.root / user_path).resolve()
        if not full.is_relative_to(self.root):
            return None
        return full


class ReadFileTool(Tool):
    def __init__(self, workspace: Workspace) -> None:
        self._workspace = workspace

    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return (
            "Read a file from the workspace. "
            "Returns the file content with line numbers."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File path relative to the workspace."},
            },
            "required": ["path"],
        }

    async def execute(self, path: str = "", **_: Any) -> str:
        p = self._workspace.resolve(path)
        if p is None:
            return error_payload("Path traversal not allowed")
        if not p.is_file():
            return error_payload(f"File not found: {path}")

        text = p.read_text(encoding="utf-8", errors="replace")
        if len(text) > MAX_READ_CHARS:
            text = text[:MAX_READ_CHARS]
        return "\n".join(f"{i:4} | {line}" for i, line in enumerate(text.split("\n"), start=1))


class WriteFileTool(Tool):
    def __init__(self, workspace: Workspace) -> None:
        self._workspace = workspace

    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return (
            "Write content to a file in the workspace. "
            "Creates parent directories if needed. Overwrites existing files."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File path relative to the workspace."},
                "content": {"type": "string", "description": "Content to write."},
            },
            "required": ["path", "content"],
        }

    async def execute(self, path: str = "", content: str = "", **_: Any) -> str:
        p = self._workspace.resolve(path)
        if p is None or p == self._workspace.root:
            return error_payload("Path traversal not allowed")

        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8")
        logger.info("files.write", path=str(p), size=len(content))
        return json.dumps({"written": path, "bytes": len(content.encode("utf-8"))})


class ListFilesTool(Tool):
    def __init__(self, workspace: Workspace) -> None:
        self._workspace = workspace

    @property
    def name(self) -> str:
        return "list_files"

    @property
    def description(self) -> str:
        return "List files and directories in the workspace."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Directory path relative to the workspace. Defaults to '.'",
                },
            },
            "required": [],
        }

    async def execute(self, path: str = ".", **_: Any) -> str:
        p = self._workspace.resolve(path or ".")
        if p is None:
            return error_payload("Path traversal not allowed")
        if not p.is_dir():
            return error_payload(f"Directory not found: {path}")

        lines = []
        for entry in sorted(p.iterdir())[:MAX_LIST_ENTRIES]:
            if entry.is_dir():
                lines.append(f"[dir] {entry.name}")
            else:
                lines.append(f"[file] {entry.name} ({entry.stat().st_size} bytes)")
        return "\n".join(lines) or "(empty directory)"
