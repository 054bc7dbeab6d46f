"""Feishu (Lark) channel: inbound event parsing and outbound text replies."""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass
from typing import Any, Literal

import httpx
import structlog

from parley.channels.base import ChannelReplier
from parley.config import FeishuChannelConfig

logger = structlog.get_logger()

TOKEN_REFRESH_MARGIN_S = 300
MESSAGE_EVENT = "im.message.receive_v1"
MENTION_PATTERN = re.compile(r"@_user_\d+\s*")

FeishuEventKind = Literal["challenge", "message", "ignored", "invalid"]


class FeishuError(Exception):
    """Feishu API answered with a non-zero code."""


@dataclass
class FeishuEvent:
    """A parsed Feishu webhook body."""

    kind: FeishuEventKind
    challenge: str | None = None
    event_id: str | None = None
    event_type: str | None = None
    sender_id: str = "unknown"
    message_id: str | None = None
    chat_id: str | None = None
    text: str = ""
    reason: str | None = None


def parse_feishu_event(body: dict[str, Any]) -> FeishuEvent:
    """Classify a webhook body and pull out the text of message events."""
    if body.get("type") == "url_verification":
        return FeishuEvent(kind="challenge", challenge=str(body.get("challenge") or ""))

    header = body.get("header") or {}
    event_id = header.get("event_id")
    if not event_id:
        return FeishuEvent(kind="invalid", reason="Missing event header")
    event_type = header.get("event_type")

    if event_type != MESSAGE_EVENT:
        return FeishuEvent(
            kind="ignored",
            event_id=event_id,
            event_type=event_type,
            reason="Event type not handled",
        )

    event = body.get("event") or {}
    message = event.get("message")
    sender = event.get("sender")
    if not message or not sender:
        return FeishuEvent(
            kind="invalid",
            event_id=event_id,
            event_type=event_type,
            reason="Malformed message event",
        )

    sender_id = (sender.get("sender_id") or {}).get("open_id") or "unknown"
    if message.get("message_type") != "text":
        return FeishuEvent(
            kind="ignored",
            event_id=event_id,
            event_type=event_type,
            sender_id=sender_id,
            reason="Ignored non-text message",
        )

    raw_content = message.get("content") or ""
    try:
        text = json.loads(raw_content).get("text") or ""
    except (json.JSONDecodeError, AttributeError):
        text = raw_content

    text = MENTION_PATTERN.sub("", text).strip()
    if not text:
        return FeishuEvent(
            kind="ignored",
            event_id=event_id,
            event_type=event_type,
            sender_id=sender_id,
            reason="Empty message after mention strip",
        )

    return FeishuEvent(
        kind="message",
        event_id=event_id,
        event_type=event_type,
        sender_id=sender_id,
        message_id=message.get("message_id"),
        chat_id=message.get("chat_id"),
        text=text,
    )


class FeishuChannel(ChannelReplier):
    """Replies through the Feishu IM API using a cached tenant access token."""

    def __init__(
        self,
        config: FeishuChannelConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self._transport = transport
        self._token: str | None = None
        self._token_expires_at = 0.0

    @property
    def name(self) -> str:
        return "feishu"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.config.timeout_s,
            transport=self._transport,
        )

    async def tenant_token(self, client: httpx.AsyncClient) -> str:
        """Return the cached token, refreshing it five minutes before expiry."""
        if self._token and time.time() < self._token_expires_at - TOKEN_REFRESH_MARGIN_S:
            return self._token

        response = await client.post(
            "/auth/v3/tenant_access_token/internal",
            json={"app_id": self.config.app_id, "app_secret": self.config.app_secret},
        )
        data = response.json()
        if data.get("code") != 0:
            logger.error("channels.feishu.token_failed", code=data.get("code"), msg=data.get("msg"))
            raise FeishuError(f"Feishu token error: {data.get('msg')}")

        self._token = data["tenant_access_token"]
        self._token_expires_at = time.time() + int(data.get("expire") or 0)
        logger.info("channels.feishu.token_refreshed", expires_in=data.get("expire"))
        return self._token

    async def reply(self, reply_to: str | None, peer_id: str, text: str) -> bool:
        """Reply in-thread to ``reply_to`` when known, otherwise message the user."""
        content = json.dumps({"text": text}, ensure_ascii=False)
        try:
            async with self._client() as client:
                token = await self.tenant_token(client)
                headers = {"Authorization": f"Bearer {token}"}
                if reply_to:
                    response = await client.post(
                        f"/im/v1/messages/{reply_to}/reply",
                        json={"msg_type": "text", "content": content},
                        headers=headers,
                    )
                elif peer_id and peer_id != "unknown":
                    response = await client.post(
                        "/im/v1/messages",
                        params={"receive_id_type": "open_id"},
                        json={"receive_id": peer_id, "msg_type": "text", "content": content},
                        headers=headers,
                    )
                else:
                    logger.warning("channels.feishu.no_target")
                    return False
                data = response.json()
        except (httpx.HTTPError, ValueError, FeishuError) as exc:
            logger.error("channels.feishu.reply_failed", peer_id=peer_id, error=str(exc))
            return False

        if data.get("code") != 0:
            logger.error(
                "channels.feishu.reply_rejected",
                code=data.get("code"),
                msg=data.get("msg"),
                peer_id=peer_id,
            )
            return False

        logger.info(
            "channels.feishu.reply_sent",
            peer_id=peer_id,
            message_id=(data.get("data") or {}).get("message_id"),
        )
        return True
