import json

import httpx
import pytest

from parley.channels.feishu import FeishuChannel, parse_feishu_event
from parley.channels.log import LogChannel
from parley.channels.manager import ChannelManager
from parley.channels.webhook import WebhookChannel
from parley.config import FeishuChannelConfig


def message_body(message_type: str = "text", content: str = '{"text": "hello"}') -> dict:
    return {
        "header": {"event_id": "ev_1", "event_type": "im.message.receive_v1"},
        "event": {
            "sender": {"sender_id": {"open_id": "ou_1"}},
            "message": {
                "message_id": "om_1",
                "chat_id": "oc_1",
                "message_type": message_type,
                "content": content,
            },
        },
    }


def test_parse_url_verification() -> None:
    event = parse_feishu_event({"type": "url_verification", "challenge": "abc"})

    assert event.kind == "challenge"
    assert event.challenge == "abc"


def test_parse_text_message() -> None:
    event = parse_feishu_event(message_body())

    assert event.kind == "message"
    assert (event.event_id, event.sender_id, event.message_id, event.text) == (
        "ev_1", "ou_1", "om_1", "hello",
    )


def test_parse_strips_mentions() -> None:
    event = parse_feishu_event(message_body(content='{"text": "@_user_1 what time is it? @_user_12"}'))

    assert event.kind == "message"
    assert event.text == "what time is it?"


def test_parse_ignores_mention_only_message() -> None:
    event = parse_feishu_event(message_body(content='{"text": "@_user_1 "}'))

    assert event.kind == "ignored"
    assert event.reason == "Empty message after mention strip"


def test_parse_ignores_non_text_and_other_events() -> None:
    image = parse_feishu_event(message_body(message_type="image", content="{}"))
    other = parse_feishu_event({"header": {"event_id": "ev_2", "event_type": "im.chat.updated_v1"}})

    assert image.kind == "ignored"
    assert other.kind == "ignored"
    assert other.event_id == "ev_2"


def test_parse_rejects_missing_header() -> None:
    assert parse_feishu_event({"event": {}}).kind == "invalid"


def feishu_transport(requests: list, reply_code: int = 0):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path.endswith("/tenant_access_token/internal"):
            return httpx.Response(200, json={"code": 0, "tenant_access_token": "t-1", "expire": 7200})
        return httpx.Response(200, json={"code": reply_code, "msg": "ok", "data": {"message_id": "om_2"}})

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_feishu_reply_in_thread_with_cached_token() -> None:
    requests: list[httpx.Request] = []
    channel = FeishuChannel(
        FeishuChannelConfig(enabled=True, app_id="cli_1", app_secret="s"),
        transport=feishu_transport(requests),
    )

    assert await channel.reply("om_1", "ou_1", "first") is True
    assert await channel.reply("om_1", "ou_1", "second") is True

    paths = [r.url.path for r in requests]
    assert paths == [
        "/open-apis/auth/v3/tenant_access_token/internal",
        "/open-apis/im/v1/messages/om_1/reply",
        "/open-apis/im/v1/messages/om_1/reply",
    ]
    assert requests[1].headers["authorization"] == "Bearer t-1"
    body = json.loads(requests[1].content)
    assert body["msg_type"] == "text"
    assert json.loads(body["content"]) == {"text": "first"}


@pytest.mark.asyncio
async def test_feishu_direct_message_without_reply_to() -> None:
    requests: list[httpx.Request] = []
    channel = FeishuChannel(FeishuChannelConfig(enabled=True), transport=feishu_transport(requests))

    assert await channel.reply(None, "ou_1", "hi") is True

    assert requests[-1].url.path == "/open-apis/im/v1/messages"
    assert requests[-1].url.params["receive_id_type"] == "open_id"
    assert json.loads(requests[-1].content)["receive_id"] == "ou_1"


@pytest.mark.asyncio
async def test_feishu_rejected_reply_returns_false() -> None:
    channel = FeishuChannel(FeishuChannelConfig(enabled=True), transport=feishu_transport([], reply_code=230002))

    assert await channel.reply("om_1", "ou_1", "hi") is False


@pytest.mark.asyncio
async def test_webhook_posts_envelope() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(204)

    channel = WebhookChannel("https://hooks.example.com/in", transport=httpx.MockTransport(handler))

    assert await channel.reply("r1", "peer-1", "hello") is True
    assert seen == [{
        "source": "parley:webhook",
        "target": "peer-1",
        "text": "hello",
        "metadata": {"reply_to": "r1"},
    }]


@pytest.mark.asyncio
async def test_webhook_error_status_returns_false() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(502, text="bad gateway"))
    channel = WebhookChannel("https://hooks.example.com/in", transport=transport)

    assert await channel.reply(None, "peer-1", "hello") is False


class BrokenChannel(LogChannel):
    async def reply(self, reply_to, peer_id, text) -> bool:
        raise RuntimeError("socket closed")


@pytest.mark.asyncio
async def test_manager_routes_by_name_and_never_raises() -> None:
    manager = ChannelManager()
    manager.register(LogChannel("log"))
    manager.register(BrokenChannel("broken"))

    assert await manager.reply("LOG", None, "p", "hi") is True
    assert await manager.reply("broken", None, "p", "hi") is False
    assert await manager.reply("missing", None, "p", "hi") is False
    assert manager.names() == ["log", "broken"]
