"""Channel registry and lifecycle."""

from __future__ import annotations

import structlog

from parley.channels.base import ChannelReplier

logger = structlog.get_logger()


class ChannelManager:
    """Owns every reply channel and routes replies by channel name."""

    def __init__(self) -> None:
        self.channels: dict[str, ChannelReplier] = {}

    def register(self, channel: ChannelReplier) -> None:
        key = channel.name.lower()
        if key in self.channels:
            logger.warning("channels.duplicate", channel=key, action="replacing")
        self.channels[key] = channel
        logger.info("channels.registered", channel=key)

    def get(self, name: str) -> ChannelReplier | None:
        return self.channels.get((name or "").lower())

    def names(self) -> list[str]:
        return list(self.channels)

    async def reply(self, channel: str, reply_to: str | None, peer_id: str, text: str) -> bool:
        """Deliver one reply. Never raises; returns whether it was delivered."""
        replier = self.get(channel)
        if replier is None:
            logger.warning("channels.reply.unhandled", channel=channel, peer_id=peer_id)
            return False
        try:
            return await replier.reply(reply_to, peer_id, text)
        except Exception as exc:
            logger.warning(
                "channels.reply.failed",
                channel=channel,
                peer_id=peer_id,
                error=str(exc),
            )
            return False

    async def start(self) -> None:
        for name, channel in self.channels.items():
            try:
                await channel.start()
                logger.info("channels.started", channel=name)
            except Exception as e:
                logger.error("channels.start_failed", channel=name, error=str(e))

    async def stop(self) -> None:
        for name, channel in self.channels.items():
            try:
                await channel.stop()
                logger.info("channels.stopped", channel=name)
            except Exception as e:
                logger.warning("channels.stop_failed", channel=name, error=str(e))
