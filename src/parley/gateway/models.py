"""Dispatch models: inbound events, queued jobs, inline results."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from parley.agent.types import TokenUsage

DispatchMode = Literal["inline", "queued"]


def new_task_id(channel: str) -> str:
    return f"{channel}-{uuid.uuid4().hex[:12]}"


@dataclass
class InboundEvent:
    """Normalized inbound message accepted by the dispatcher."""

    channel: str
    peer_id: str
    text: str
    reply_to: str | None = None
    event_id: str | None = None
    priority: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class Job:
    """One deferred conversation turn, consumed once by a worker."""

    task_id: str
    channel: str
    peer_id: str
    content: str
    reply_to: str | None = None
    priority: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_event(cls, event: InboundEvent, task_id: str | None = None) -> Job:
        return cls(
            task_id=task_id or new_task_id(event.channel),
            channel=event.channel,
            peer_id=event.peer_id,
            content=event.text,
            reply_to=event.reply_to,
            priority=event.priority,
            metadata=dict(event.metadata),
        )

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe form passed through the queue."""
        return {
            "task_id": self.task_id,
            "channel": self.channel,
            "peer_id": self.peer_id,
            "content": self.content,
            "reply_to": self.reply_to,
            "priority": self.priority,
            "created_at": self.created_at.isoformat(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Job:
        raw_created = payload.get("created_at")
        return cls(
            task_id=payload["task_id"],
            channel=payload["channel"],
            peer_id=payload["peer_id"],
            content=payload.get("content") or "",
            reply_to=payload.get("reply_to"),
            priority=int(payload.get("priority") or 0),
            created_at=datetime.fromisoformat(raw_created) if raw_created else datetime.now(UTC),
            metadata=payload.get("metadata") or {},
        )


@dataclass
class InlineResult:
    """Collected outcome of one inline conversation turn."""

    text: str = ""
    usage: TokenUsage | None = None
    tool_calls: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class DispatchResult:
    mode: DispatchMode
    task_id: str | None = None
    result: InlineResult | None = None
    queued: bool = False
