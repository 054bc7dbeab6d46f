"""Shared fakes for the test suite."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

from parley.agent.types import AgentStreamEvent, ChatMessage, StreamChunk, TokenUsage, ToolCall
from parley.config import AuditConfig, ParleyConfig, ShellConfig
from parley.llm.base import LLMProvider


class ScriptedProvider(LLMProvider):
    """Replays one scripted list of chunks per round; the last round repeats."""

    name = "scripted"

    def __init__(self, rounds: list[list[StreamChunk]]) -> None:
        super().__init__()
        self.rounds = rounds
        self.calls: list[dict] = []

    @property
    def model(self) -> str:
        return "scripted-model"

    async def chat(self, messages, tools=None, system_prompt=None) -> AsyncIterator[StreamChunk]:
        self.calls.append({
            "messages": list(messages),
            "tools": tools,
            "system_prompt": system_prompt,
        })
        index = min(len(self.calls) - 1, len(self.rounds) - 1)
        self.request_count += 1
        for chunk in self.rounds[index]:
            yield chunk


def text_round(text: str, usage: TokenUsage | None = None) -> list[StreamChunk]:
    return [StreamChunk.of_text(text), StreamChunk.of_done(usage)]


def tool_round(call_id: str, name: str, arguments: str = "{}") -> list[StreamChunk]:
    return [
        StreamChunk.of_tool_call(ToolCall(id=call_id, name=name, arguments=arguments)),
        StreamChunk.of_done(TokenUsage(prompt_tokens=10, completion_tokens=2, total_tokens=12)),
    ]


class FakeAgent:
    """Stands in for AgentLoop.run with a fixed event script."""

    def __init__(self, events: list[AgentStreamEvent], raise_after: int | None = None) -> None:
        self.events = events
        self.raise_after = raise_after
        self.runs: list[tuple[str, str, str]] = []

    async def run(self, channel: str, peer_id: str, text: str) -> AsyncIterator[AgentStreamEvent]:
        self.runs.append((channel, peer_id, text))
        for i, event in enumerate(self.events):
            if self.raise_after is not None and i == self.raise_after:
                raise RuntimeError("agent exploded")
            yield event


class FakeQueue:
    def __init__(self, accept: bool = True) -> None:
        self.accept = accept
        self.jobs = []
        self.closed = False

    async def enqueue(self, job) -> str | None:
        if not self.accept:
            return None
        self.jobs.append(job)
        return job.task_id

    async def close(self) -> None:
        self.closed = True


def make_config(tmp_path: Path, **overrides) -> ParleyConfig:
    """A config that keeps every file under ``tmp_path``."""
    values = {
        "data_dir": str(tmp_path / "data"),
        "plugins_dir": str(tmp_path / "plugins"),
        "workspace_dir": str(tmp_path / "workspace"),
        "shell": ShellConfig(writable_dirs=[str(tmp_path)]),
        "audit": AuditConfig(dir=str(tmp_path / "audit")),
        "log_level": "WARNING",
    }
    values.update(overrides)
    return ParleyConfig(**values)


def roles(messages: list[ChatMessage]) -> list[str]:
    return [m.role for m in messages]
