from types import SimpleNamespace

import litellm
import pytest

from parley.agent.types import ChatMessage, TokenUsage, ToolCall, ToolDefinition
from parley.config import OpenAIProviderConfig
from parley.llm.litellm_provider import LiteLLMProvider, to_openai_messages


def fragment(index=0, call_id=None, name=None, arguments=None):
    return SimpleNamespace(
        index=index,
        id=call_id,
        function=SimpleNamespace(name=name, arguments=arguments),
    )


def chunk(content=None, tool_calls=None, finish_reason=None, usage=None):
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)],
        usage=usage,
    )


def usage_chunk(prompt, completion):
    return SimpleNamespace(
        choices=[],
        usage=SimpleNamespace(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=prompt + completion,
        ),
    )


def install_stream(monkeypatch, chunks, fail_models=()):
    calls = []

    async def stream():
        for c in chunks:
            if isinstance(c, Exception):
                raise c
            yield c

    async def fake_acompletion(**kwargs):
        calls.append(kwargs)
        if kwargs["model"] in fail_models:
            raise RuntimeError(f"{kwargs['model']} unavailable")
        return stream()

    monkeypatch.setattr(litellm, "acompletion", fake_acompletion)
    return calls


async def collect(provider, messages=None, tools=None):
    messages = messages or [ChatMessage(role="user", content="hi")]
    return [c async for c in provider.chat(messages, tools, "be brief")]


@pytest.mark.asyncio
async def test_text_deltas_and_usage(monkeypatch) -> None:
    calls = install_stream(monkeypatch, [
        chunk(content="Hel"),
        chunk(content="lo"),
        chunk(finish_reason="stop"),
        usage_chunk(8, 2),
    ])
    provider = LiteLLMProvider(OpenAIProviderConfig(model="openai/gpt-4o"))

    chunks = await collect(provider)

    assert [(c.type, c.content) for c in chunks[:2]] == [("text", "Hel"), ("text", "lo")]
    assert chunks[-1].type == "done"
    assert chunks[-1].usage == TokenUsage(prompt_tokens=8, completion_tokens=2, total_tokens=10)
    assert calls[0]["stream"] is True
    assert calls[0]["stream_options"] == {"include_usage": True}
    assert calls[0]["messages"][0] == {"role": "system", "content": "be brief"}
    assert provider.stats["total_tokens"] == 10


@pytest.mark.asyncio
async def test_tool_call_fragments_are_folded(monkeypatch) -> None:
    install_stream(monkeypatch, [
        chunk(tool_calls=[fragment(0, "call_a", "get_weather", '{"ci')]),
        chunk(tool_calls=[fragment(0, None, None, 'ty": "Paris"}')]),
        chunk(tool_calls=[fragment(1, "call_b", "get_current_datetime", "{}")]),
        chunk(finish_reason="tool_calls"),
    ])
    provider = LiteLLMProvider(OpenAIProviderConfig())
    tools = [ToolDefinition(name="get_weather", description="weather")]

    chunks = await collect(provider, tools=tools)

    assert [c.type for c in chunks] == ["tool_call", "tool_call", "done"]
    assert chunks[0].tool_call == ToolCall(id="call_a", name="get_weather", arguments='{"city": "Paris"}')
    assert chunks[1].tool_call == ToolCall(id="call_b", name="get_current_datetime", arguments="{}")
    assert chunks[2].usage is None


@pytest.mark.asyncio
async def test_fragment_without_id_gets_synthesized_id(monkeypatch) -> None:
    install_stream(monkeypatch, [
        chunk(tool_calls=[fragment(0, None, "get_current_datetime", "")]),
    ])
    provider = LiteLLMProvider(OpenAIProviderConfig())

    chunks = await collect(provider)

    assert chunks[0].type == "tool_call"
    assert chunks[0].tool_call.id.startswith("call_")
    assert chunks[0].tool_call.arguments == "{}"
    assert chunks[-1].type == "done"


@pytest.mark.asyncio
async def test_nameless_buffer_is_dropped(monkeypatch) -> None:
    install_stream(monkeypatch, [
        chunk(tool_calls=[fragment(0, "call_x", None, '{"a": 1}')]),
        chunk(finish_reason="tool_calls"),
    ])
    provider = LiteLLMProvider(OpenAIProviderConfig())

    chunks = await collect(provider)

    assert [c.type for c in chunks] == ["done"]


@pytest.mark.asyncio
async def test_request_failure_becomes_single_error(monkeypatch) -> None:
    install_stream(monkeypatch, [], fail_models=("openai/gpt-4o",))
    provider = LiteLLMProvider(OpenAIProviderConfig(model="openai/gpt-4o"))

    chunks = await collect(provider)

    assert len(chunks) == 1
    assert chunks[0].type == "error"
    assert "unavailable" in chunks[0].error


@pytest.mark.asyncio
async def test_fallback_model_used_when_primary_fails(monkeypatch) -> None:
    calls = install_stream(monkeypatch, [chunk(content="from fallback")], fail_models=("primary",))
    provider = LiteLLMProvider(OpenAIProviderConfig(model="primary", fallback_models=["backup"]))

    chunks = await collect(provider)

    assert [c["model"] for c in calls] == ["primary", "backup"]
    assert [c.type for c in chunks] == ["text", "done"]


@pytest.mark.asyncio
async def test_mid_stream_failure_ends_with_error(monkeypatch) -> None:
    install_stream(monkeypatch, [chunk(content="partial"), ConnectionError("reset by peer")])
    provider = LiteLLMProvider(OpenAIProviderConfig())

    chunks = await collect(provider)

    assert [c.type for c in chunks] == ["text", "error"]
    assert chunks[1].error == "reset by peer"


def test_history_translation_keeps_tool_linkage() -> None:
    messages = [
        ChatMessage(role="user", content="weather?"),
        ChatMessage(
            role="assistant",
            content="",
            tool_calls=[ToolCall(id="call_1", name="get_weather", arguments="{}")],
        ),
        ChatMessage(role="tool", content="sunny", tool_call_id="call_1"),
    ]

    wire = to_openai_messages(messages)

    assert wire[1]["content"] is None
    assert wire[1]["tool_calls"][0]["function"]["name"] == "get_weather"
    assert wire[2] == {"role": "tool", "content": "sunny", "tool_call_id": "call_1"}
