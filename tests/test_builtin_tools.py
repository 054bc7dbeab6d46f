import json

import pytest

from parley.agent.tools import ToolRegistry
from parley.config import ShellConfig
from parley.tools.builtin import register_builtin_tools
from parley.tools.clock import DateTimeTool
from parley.tools.files import ListFilesTool, ReadFileTool, Workspace, WriteFileTool
from parley.tools.shell import ShellTool
from helpers import make_config


@pytest.mark.asyncio
async def test_clock_reports_utc_iso_and_timezone() -> None:
    result = json.loads(await DateTimeTool().execute(timezone="UTC"))

    assert result["timezone"] == "UTC"
    assert result["iso"].endswith("Z")
    assert isinstance(result["unix_ms"], int)


@pytest.mark.asyncio
async def test_clock_unknown_timezone() -> None:
    result = json.loads(await DateTimeTool().execute(timezone="Mars/Olympus_Mons"))

    assert result == {"error": "Unknown timezone: Mars/Olympus_Mons"}


@pytest.mark.asyncio
async def test_shell_runs_inside_sandbox(tmp_path) -> None:
    tool = ShellTool(ShellConfig(writable_dirs=[str(tmp_path)]))

    result = json.loads(await tool.execute(command="echo hello"))

    assert result["exit_code"] == 0
    assert result["stdout"].strip() == "hello"


@pytest.mark.asyncio
async def test_shell_refuses_cwd_outside_sandbox(tmp_path) -> None:
    tool = ShellTool(ShellConfig(writable_dirs=[str(tmp_path / "box")]))
    (tmp_path / "box").mkdir()

    result = json.loads(await tool.execute(command="ls", cwd=str(tmp_path)))

    assert "outside allowed sandbox paths" in result["error"]


@pytest.mark.asyncio
async def test_shell_blocks_configured_commands(tmp_path) -> None:
    tool = ShellTool(ShellConfig(writable_dirs=[str(tmp_path)]))

    result = json.loads(await tool.execute(command="sudo SHUTDOWN -h now"))

    assert result == {"error": "Command blocked: 'shutdown' is not allowed."}


@pytest.mark.asyncio
async def test_shell_timeout_kills_process(tmp_path) -> None:
    tool = ShellTool(ShellConfig(writable_dirs=[str(tmp_path)]))

    result = json.loads(await tool.execute(command="sleep 5", timeout=1))

    assert result == {"error": "Command timed out after 1s."}


@pytest.mark.asyncio
async def test_shell_disabled(tmp_path) -> None:
    tool = ShellTool(ShellConfig(enabled=False, writable_dirs=[str(tmp_path)]))

    assert json.loads(await tool.execute(command="echo hi")) == {"error": "Shell tool is disabled."}


@pytest.mark.asyncio
async def test_file_tools_round_trip(tmp_path) -> None:
    workspace = Workspace(tmp_path)

    written = json.loads(await WriteFileTool(workspace).execute(path="notes/a.txt", content="one\ntwo"))
    listing = await ListFilesTool(workspace).execute(path="notes")
    content = await ReadFileTool(workspace).execute(path="notes/a.txt")

    assert written == {"written": "notes/a.txt", "bytes": 7}
    assert listing == "[file] a.txt (7 bytes)"
    assert content == "   1 | one\n   2 | two"


@pytest.mark.asyncio
async def test_file_tools_refuse_traversal(tmp_path) -> None:
    workspace = Workspace(tmp_path / "ws")

    read = json.loads(await ReadFileTool(workspace).execute(path="../secret.txt"))
    write = json.loads(await WriteFileTool(workspace).execute(path="../../etc/x", content="x"))

    assert read == {"error": "Path traversal not allowed"}
    assert write == {"error": "Path traversal not allowed"}


@pytest.mark.asyncio
async def test_list_empty_directory(tmp_path) -> None:
    assert await ListFilesTool(Workspace(tmp_path)).execute() == "(empty directory)"


def test_builtin_registration_respects_shell_switch(tmp_path) -> None:
    enabled = ToolRegistry()
    register_builtin_tools(enabled, make_config(tmp_path))
    disabled = ToolRegistry()
    register_builtin_tools(disabled, make_config(tmp_path, shell=ShellConfig(enabled=False)))

    assert "run_shell" in enabled.tools
    assert "run_shell" not in disabled.tools
    assert {"get_current_datetime", "read_file", "write_file", "list_files"} <= set(disabled.tools)
