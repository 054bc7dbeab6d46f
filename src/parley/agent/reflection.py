"""Post-run reflection: a cheap heuristic summary of a finished conversation."""

from __future__ import annotations

import re
from collections import Counter

import structlog

from parley.agent.types import ChatMessage

logger = structlog.get_logger()


def extract_topic_hints(messages: list[ChatMessage], limit: int = 5) -> str:
    """Most frequent words longer than three characters, or ``general``."""
    text = " ".join(m.content for m in messages)
    words = [w.lower() for w in re.sub(r"[^\w\s]", " ", text).split() if len(w) > 3]
    top = [word for word, _ in Counter(words).most_common(limit)]
    return ", ".join(top) or "general"


async def reflect_on_conversation(
    messages: list[ChatMessage],
    channel: str,
    peer_id: str,
) -> None:
    user_messages = [m for m in messages if m.role == "user"]
    if not user_messages:
        return

    tool_messages = [m for m in messages if m.role == "tool"]
    logger.info(
        "reflection.summary",
        channel=channel,
        peer_id=peer_id,
        user_messages=len(user_messages),
        tool_calls=len(tool_messages),
        topics=extract_topic_hints(user_messages),
    )
