"""Core channel abstractions."""

from __future__ import annotations

from abc import ABC, abstractmethod


class ChannelReplier(ABC):
    """Delivers a finished reply back to one messaging surface."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    async def reply(self, reply_to: str | None, peer_id: str, text: str) -> bool:
        """Send ``text`` to ``peer_id``; ``reply_to`` is the channel's correlation id."""
        ...

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass
