"""Shell tool: run commands inside the configured sandbox directories."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import structlog

from parley.agent.tools import Tool, error_payload
from parley.config import ShellConfig

logger = structlog.get_logger()

MAX_STDOUT = 10_000
MAX_STDERR = 5_000


class ShellTool(Tool):
    """Execute shell commands on the host."""

    def __init__(self, config: ShellConfig) -> None:
        self._config = config

    @property
    def name(self) -> str:
        return "run_shell"

    @property
    def description(self) -> str:
        return (
            "Execute a shell command on the host machine. Use with caution. "
            "Returns stdout, stderr, and exit code."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {
                    "type": "string",
                    "description": "The shell command to execute.",
                },
                "cwd": {
                    "type": "string",
                    "description": "Working directory (default: the first sandbox directory).",
                },
                "timeout": {
                    "type": "number",
                    "description": f"Timeout in seconds (default: {self._config.timeout}).",
                },
            },
            "required": ["command"],
        }

    def _default_cwd(self) -> Path:
        cwd = Path(self._config.writable_dirs[0]) if self._config.writable_dirs else Path("/tmp")
        cwd.mkdir(parents=True, exist_ok=True)
        return cwd

    def _timeout(self, requested: Any) -> float:
        try:
            value = float(requested) if requested else float(self._config.timeout)
        except (TypeError, ValueError):
            value = float(self._config.timeout)
        return max(1.0, min(value, float(self._config.max_timeout)))

    async def execute(
        self,
        command: str = "",
        cwd: str = "",
        timeout: float | None = None,
        **_: Any,
    ) -> str:
        if not self._config.enabled:
            return error_payload("Shell tool is disabled.")
        if not command.strip():
            return error_payload("Empty command.")

        working_dir = Path(cwd) if cwd else self._default_cwd()
        resolved_cwd = working_dir.resolve()
        allowed_cwds = [Path(allowed).resolve() for allowed in self._config.writable_dirs]
        if not any(resolved_cwd.is_relative_to(allowed) for allowed in allowed_cwds):
            return error_payload(f"Working directory '{working_dir}' is outside allowed sandbox paths.")
        if not resolved_cwd.is_dir():
            return error_payload(f"Working directory not found: {working_dir}")

        lowered_command = command.lower()
        for blocked in self._config.blocked_commands:
            if blocked.lower() in lowered_command:
                logger.warning("shell.blocked", command=command, pattern=blocked)
                return error_payload(f"Command blocked: '{blocked}' is not allowed.")

        limit = self._timeout(timeout)
        logger.info("shell.execute", command=command, cwd=str(resolved_cwd), timeout=limit)

        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(resolved_cwd),
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=limit)
        except TimeoutError:
            process.kill()
            await process.wait()
            logger.warning("shell.timeout", command=command, timeout=limit)
            return error_payload(f"Command timed out after {limit:g}s.")

        exit_code = process.returncode
        logger.info("shell.result", exit_code=exit_code, output_length=len(stdout))
        return json.dumps({
            "exit_code": exit_code,
            "stdout": stdout.decode("utf-8", errors="replace")[:MAX_STDOUT],
            "stderr": stderr.decode("utf-8", errors="replace")[:MAX_STDERR],
        }, ensure_ascii=False)
