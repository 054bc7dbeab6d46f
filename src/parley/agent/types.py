"""Core chat types shared by providers, the agent loop, and the session store.

Kept small and provider-agnostic so every adapter can translate to and from
them without importing each other.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

import structlog

logger = structlog.get_logger()

Role = Literal["system", "user", "assistant", "tool"]
StreamChunkType = Literal["text", "tool_call", "done", "error"]
AgentEventType = Literal["text", "tool_start", "tool_result", "done", "error"]


def new_call_id() -> str:
    """Synthesize a tool call id for providers that do not assign one."""
    return f"call_{uuid.uuid4().hex[:24]}"


def parse_arguments(raw: str | None) -> dict[str, Any]:
    """Parse tool-call arguments, falling back to an empty object."""
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


@dataclass
class ToolCall:
    """A model-requested tool invocation. ``arguments`` is raw JSON text."""

    id: str
    name: str
    arguments: str = "{}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to OpenAI tool_calls format."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolCall:
        function = data.get("function") or {}
        return cls(
            id=str(data.get("id") or ""),
            name=str(function.get("name") or ""),
            arguments=str(function.get("arguments") or ""),
        )


@dataclass(frozen=True)
class ToolDefinition:
    """Schema advertised to the model for one tool."""

    name: str
    description: str
    parameters: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    def to_wire(self) -> dict[str, int]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass
class ChatMessage:
    """A single message in a session transcript."""

    role: Role
    content: str
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Serialize for persistence."""
        data: dict[str, Any] = {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.tool_calls:
            data["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatMessage:
        raw_calls = data.get("tool_calls")
        tool_calls = None
        if isinstance(raw_calls, list):
            tool_calls = [ToolCall.from_dict(tc) for tc in raw_calls if isinstance(tc, dict)]
        raw_ts = data.get("timestamp")
        timestamp = datetime.fromisoformat(raw_ts) if isinstance(raw_ts, str) else datetime.now(UTC)
        return cls(
            role=data.get("role", "user"),
            content=data.get("content") or "",
            tool_calls=tool_calls or None,
            tool_call_id=data.get("tool_call_id"),
            timestamp=timestamp,
        )


def normalize_history(messages: list[ChatMessage]) -> list[ChatMessage]:
    """Drop tool messages whose originating assistant call is not in the history.

    Providers reject tool results that do not answer a preceding tool call, so
    a transcript loaded from storage is cleaned before each model request.
    """
    normalized: list[ChatMessage] = []
    valid_tool_call_ids: set[str] = set()

    for msg in messages:
        if msg.role == "assistant":
            for tool_call in msg.tool_calls or []:
                if tool_call.id:
                    valid_tool_call_ids.add(tool_call.id)
            normalized.append(msg)
            continue

        if msg.role == "tool":
            if msg.tool_call_id and msg.tool_call_id in valid_tool_call_ids:
                normalized.append(msg)
            else:
                logger.warning("history.drop_orphan_tool_message", tool_call_id=msg.tool_call_id)
            continue

        normalized.append(msg)

    return normalized


@dataclass
class StreamChunk:
    """Vendor-neutral unit emitted by every provider adapter."""

    type: StreamChunkType
    content: str | None = None
    tool_call: ToolCall | None = None
    usage: TokenUsage | None = None
    error: str | None = None

    @classmethod
    def of_text(cls, content: str) -> StreamChunk:
        return cls(type="text", content=content)

    @classmethod
    def of_tool_call(cls, tool_call: ToolCall) -> StreamChunk:
        return cls(type="tool_call", tool_call=tool_call)

    @classmethod
    def of_done(cls, usage: TokenUsage | None = None) -> StreamChunk:
        return cls(type="done", usage=usage)

    @classmethod
    def of_error(cls, message: str) -> StreamChunk:
        return cls(type="error", error=message)

    @property
    def is_terminal(self) -> bool:
        return self.type in ("done", "error")


@dataclass
class AgentStreamEvent:
    """Caller-facing event yielded by the conversation loop."""

    type: AgentEventType
    content: str | None = None
    tool_name: str | None = None
    tool_args: dict[str, Any] | None = None
    tool_result: str | None = None
    usage: TokenUsage | None = None
    error: str | None = None

    def to_wire(self) -> dict[str, Any]:
        """Stable JSON shape for remote transports; absent fields are omitted."""
        wire: dict[str, Any] = {"type": self.type}
        if self.content is not None:
            wire["content"] = self.content
        if self.tool_name is not None:
            wire["toolName"] = self.tool_name
        if self.tool_args is not None:
            wire["toolArgs"] = self.tool_args
        if self.tool_result is not None:
            wire["toolResult"] = self.tool_result
        if self.usage is not None:
            wire["usage"] = self.usage.to_wire()
        if self.error is not None:
            wire["error"] = self.error
        return wire
