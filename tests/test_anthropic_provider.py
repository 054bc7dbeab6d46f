import json
from types import SimpleNamespace

import pytest

from parley.agent.types import ChatMessage, TokenUsage, ToolCall
from parley.config import AnthropicProviderConfig
from parley.llm.anthropic_provider import AnthropicProvider, to_anthropic_messages


def text_delta(text):
    return SimpleNamespace(
        type="content_block_delta",
        delta=SimpleNamespace(type="text_delta", text=text),
    )


def input_delta(partial):
    return SimpleNamespace(
        type="content_block_delta",
        delta=SimpleNamespace(type="input_json_delta", partial_json=partial),
    )


BLOCK_STOP = SimpleNamespace(type="content_block_stop")
TEXT_BLOCK = SimpleNamespace(type="text", text="Let me check.")
TOOL_BLOCK = SimpleNamespace(type="tool_use", id="toolu_1", name="get_weather", input={"city": "Oslo"})


class FakeStream:
    """Replays (event, snapshot blocks) pairs like MessageStream."""

    def __init__(self, script, usage=None, fail_after=None):
        self.script = script
        self.usage = usage
        self.fail_after = fail_after
        self.current_message_snapshot = SimpleNamespace(content=[])

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __aiter__(self):
        return self._events()

    async def _events(self):
        for i, (event, blocks) in enumerate(self.script):
            if self.fail_after is not None and i == self.fail_after:
                raise RuntimeError("overloaded_error")
            self.current_message_snapshot = SimpleNamespace(content=blocks)
            yield event

    async def get_final_message(self):
        return SimpleNamespace(usage=self.usage)


class FakeClient:
    def __init__(self, stream):
        self.requests = []
        self._stream = stream
        self.messages = SimpleNamespace(stream=self._open)

    def _open(self, **kwargs):
        self.requests.append(kwargs)
        return self._stream


async def collect(provider, messages=None):
    messages = messages or [ChatMessage(role="user", content="weather in Oslo?")]
    return [c async for c in provider.chat(messages, None, "be brief")]


@pytest.mark.asyncio
async def test_text_then_tool_use_from_snapshot() -> None:
    stream = FakeStream(
        [
            (text_delta("Let me check."), [TEXT_BLOCK]),
            (BLOCK_STOP, [TEXT_BLOCK]),
            (input_delta('{"city": '), [TEXT_BLOCK, TOOL_BLOCK]),
            (input_delta('"Oslo"}'), [TEXT_BLOCK, TOOL_BLOCK]),
            (BLOCK_STOP, [TEXT_BLOCK, TOOL_BLOCK]),
            (SimpleNamespace(type="message_stop"), [TEXT_BLOCK, TOOL_BLOCK]),
        ],
        usage=SimpleNamespace(input_tokens=12, output_tokens=7),
    )
    client = FakeClient(stream)
    provider = AnthropicProvider(AnthropicProviderConfig(model="claude-test"), client=client)

    chunks = await collect(provider)

    assert [c.type for c in chunks] == ["text", "tool_call", "done"]
    assert chunks[1].tool_call.id == "toolu_1"
    assert json.loads(chunks[1].tool_call.arguments) == {"city": "Oslo"}
    assert chunks[2].usage == TokenUsage(prompt_tokens=12, completion_tokens=7, total_tokens=19)
    assert client.requests[0]["system"] == "be brief"


@pytest.mark.asyncio
async def test_tool_use_blocks_are_emitted_once() -> None:
    second = SimpleNamespace(type="tool_use", id="toolu_2", name="clock", input={})
    stream = FakeStream([
        (BLOCK_STOP, [TOOL_BLOCK]),
        (BLOCK_STOP, [TOOL_BLOCK, second]),
    ])
    provider = AnthropicProvider(AnthropicProviderConfig(), client=FakeClient(stream))

    chunks = await collect(provider)

    assert [c.tool_call.id for c in chunks if c.type == "tool_call"] == ["toolu_1", "toolu_2"]
    assert chunks[-1].type == "done"
    assert chunks[-1].usage is None


@pytest.mark.asyncio
async def test_stream_failure_becomes_error_chunk() -> None:
    stream = FakeStream([(text_delta("hi"), [TEXT_BLOCK]), (BLOCK_STOP, [])], fail_after=1)
    provider = AnthropicProvider(AnthropicProviderConfig(), client=FakeClient(stream))

    chunks = await collect(provider)

    assert [c.type for c in chunks] == ["text", "error"]
    assert chunks[1].error == "overloaded_error"


def test_consecutive_tool_results_merge_into_one_user_turn() -> None:
    messages = [
        ChatMessage(role="system", content="ignored"),
        ChatMessage(role="user", content="two things"),
        ChatMessage(
            role="assistant",
            content="",
            tool_calls=[
                ToolCall(id="t1", name="a", arguments='{"x": 1}'),
                ToolCall(id="t2", name="b", arguments="{bad"),
            ],
        ),
        ChatMessage(role="tool", content="r1", tool_call_id="t1"),
        ChatMessage(role="tool", content="r2", tool_call_id="t2"),
    ]

    wire = to_anthropic_messages(messages)

    assert [m["role"] for m in wire] == ["user", "assistant", "user"]
    assert wire[1]["content"][0] == {"type": "tool_use", "id": "t1", "name": "a", "input": {"x": 1}}
    assert wire[1]["content"][1]["input"] == {}
    assert [b["tool_use_id"] for b in wire[2]["content"]] == ["t1", "t2"]
