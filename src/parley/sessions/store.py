"""SQLite session store: one bounded transcript per (channel, peer).

The database file is shared by the API and worker processes. Appends to one
session are serialized within a process; across processes the last writer's
trimmed transcript wins.
"""

from __future__ import annotations

import asyncio
import json
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from parley.agent.types import ChatMessage

logger = structlog.get_logger()

SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    channel TEXT NOT NULL,
    peer_id TEXT NOT NULL,
    messages TEXT NOT NULL DEFAULT '[]',
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_channel_peer ON sessions(channel, peer_id);
"""


def session_key(channel: str, peer_id: str) -> str:
    return f"{channel}:{peer_id}"


def trim_history(messages: list[ChatMessage], max_messages: int) -> list[ChatMessage]:
    """Keep the newest ``max_messages`` messages.

    Tool results whose assistant call fell off the front are dropped too, so
    the retained window never opens on an unanswerable tool message.
    """
    if len(messages) <= max_messages:
        return messages
    trimmed = messages[len(messages) - max_messages:]
    start = 0
    while start < len(trimmed) and trimmed[start].role == "tool":
        start += 1
    return trimmed[start:]


@dataclass
class Session:
    """A persisted conversation for one peer on one channel."""

    id: str
    channel: str
    peer_id: str
    messages: list[ChatMessage] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Session:
        return cls(
            id=row["id"],
            channel=row["channel"],
            peer_id=row["peer_id"],
            messages=[ChatMessage.from_dict(m) for m in json.loads(row["messages"] or "[]")],
            metadata=json.loads(row["metadata"] or "{}"),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def summary(self) -> dict[str, Any]:
        """API-facing view without the full transcript."""
        return {
            "id": self.id,
            "channel": self.channel,
            "peer_id": self.peer_id,
            "message_count": len(self.messages),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class SessionStore:
    """Async SQLite-backed session store."""

    def __init__(
        self,
        db_path: str | Path,
        max_history: int = 50,
        busy_timeout_ms: int = 5000,
    ) -> None:
        self.db_path = Path(db_path)
        self.max_history = max_history
        self.busy_timeout_ms = int(busy_timeout_ms)
        self._conn: aiosqlite.Connection | None = None
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def initialize(self) -> None:
        """Open the database and create the schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(str(self.db_path))
        self._conn.row_factory = aiosqlite.Row

        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA synchronous=NORMAL")
        await self._conn.execute(f"PRAGMA busy_timeout={self.busy_timeout_ms}")
        await self._conn.executescript(SCHEMA)
        await self._conn.commit()

        logger.info("sessions.initialized", path=str(self.db_path), max_history=self.max_history)

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("sessions.closed")

    async def _fetch_one(self, sql: str, params: tuple = ()) -> dict[str, Any] | None:
        assert self._conn, "Session store not initialized"
        cursor = await self._conn.execute(sql, params)
        row = await cursor.fetchone()
        return dict(row) if row else None

    async def _execute(self, sql: str, params: tuple = ()) -> aiosqlite.Cursor:
        assert self._conn, "Session store not initialized"
        cursor = await self._conn.execute(sql, params)
        await self._conn.commit()
        return cursor

    async def get_or_create(self, channel: str, peer_id: str) -> Session:
        """Return the session for (channel, peer), creating it on first use."""
        session_id = session_key(channel, peer_id)
        now = datetime.now(UTC).isoformat()
        cursor = await self._execute(
            (
                "INSERT OR IGNORE INTO sessions "
                "(id, channel, peer_id, messages, metadata, created_at, updated_at) "
                "VALUES (?, ?, ?, '[]', '{}', ?, ?)"
            ),
            (session_id, channel, peer_id, now, now),
        )
        if cursor.rowcount > 0:
            logger.info("sessions.created", id=session_id)

        row = await self._fetch_one("SELECT * FROM sessions WHERE id = ?", (session_id,))
        assert row is not None
        return Session.from_row(row)

    async def get(self, session_id: str) -> Session | None:
        row = await self._fetch_one("SELECT * FROM sessions WHERE id = ?", (session_id,))
        return Session.from_row(row) if row else None

    async def append(self, session_id: str, message: ChatMessage) -> None:
        """Append a message, then trim the transcript to the history window."""
        async with self._locks[session_id]:
            row = await self._fetch_one(
                "SELECT messages FROM sessions WHERE id = ?", (session_id,)
            )
            if row is None:
                logger.warning("sessions.append.not_found", id=session_id)
                return

            messages = [ChatMessage.from_dict(m) for m in json.loads(row["messages"] or "[]")]
            messages.append(message)
            messages = trim_history(messages, self.max_history)

            await self._execute(
                "UPDATE sessions SET messages = ?, updated_at = ? WHERE id = ?",
                (
                    json.dumps([m.to_dict() for m in messages], ensure_ascii=False),
                    datetime.now(UTC).isoformat(),
                    session_id,
                ),
            )

    async def get_messages(self, session_id: str) -> list[ChatMessage]:
        """Retained messages in insertion order; empty for an unknown session."""
        row = await self._fetch_one("SELECT messages FROM sessions WHERE id = ?", (session_id,))
        if row is None:
            return []
        return [ChatMessage.from_dict(m) for m in json.loads(row["messages"] or "[]")]

    async def reset(self, session_id: str) -> bool:
        """Clear a transcript; identity and creation time are kept."""
        async with self._locks[session_id]:
            cursor = await self._execute(
                "UPDATE sessions SET messages = '[]', updated_at = ? WHERE id = ?",
                (datetime.now(UTC).isoformat(), session_id),
            )
        found = cursor.rowcount > 0
        logger.info("sessions.reset", id=session_id, found=found)
        return found

    async def list_sessions(self) -> list[Session]:
        """All sessions, most recently updated first."""
        assert self._conn, "Session store not initialized"
        cursor = await self._conn.execute("SELECT * FROM sessions ORDER BY updated_at DESC")
        rows = await cursor.fetchall()
        return [Session.from_row(dict(row)) for row in rows]
