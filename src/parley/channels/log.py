"""Log channel: replies go to the structured log."""

from __future__ import annotations

import structlog

from parley.channels.base import ChannelReplier

logger = structlog.get_logger()


class LogChannel(ChannelReplier):
    def __init__(self, name: str = "log") -> None:
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def reply(self, reply_to: str | None, peer_id: str, text: str) -> bool:
        logger.info(
            "channels.log.reply",
            channel=self._name,
            peer_id=peer_id,
            reply_to=reply_to,
            preview=(text or "")[:240],
        )
        return True
