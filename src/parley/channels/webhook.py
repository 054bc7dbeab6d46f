"""Generic outbound webhook channel."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from parley.channels.base import ChannelReplier

logger = structlog.get_logger()


class WebhookChannel(ChannelReplier):
    """POSTs ``{source, target, text, metadata}`` to a fixed URL."""

    def __init__(
        self,
        url: str,
        *,
        name: str = "webhook",
        timeout_s: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self._name = name
        self.timeout_s = max(1, int(timeout_s))
        self._transport = transport

    @property
    def name(self) -> str:
        return self._name

    async def reply(self, reply_to: str | None, peer_id: str, text: str) -> bool:
        if not self.url:
            logger.warning("channels.webhook.invalid", reason="missing_url")
            return False

        payload: dict[str, Any] = {
            "source": f"parley:{self._name}",
            "target": peer_id,
            "text": text,
            "metadata": {"reply_to": reply_to},
        }
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_s),
                transport=self._transport,
            ) as client:
                response = await client.post(self.url, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("channels.webhook.error", url=self.url, error=str(exc))
            return False

        if response.status_code >= 400:
            logger.warning(
                "channels.webhook.failed",
                status_code=response.status_code,
                url=self.url,
                body=response.text[:300],
            )
            return False
        return True
