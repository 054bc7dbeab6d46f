from parley.agent.types import (
    AgentStreamEvent,
    ChatMessage,
    TokenUsage,
    ToolCall,
    normalize_history,
    parse_arguments,
)


def test_normalize_keeps_tool_message_with_matching_tool_call() -> None:
    messages = [
        ChatMessage(
            role="assistant",
            content="",
            tool_calls=[ToolCall(id="call_1", name="hello", arguments="{}")],
        ),
        ChatMessage(role="tool", content="ok", tool_call_id="call_1"),
    ]

    normalized = normalize_history(messages)

    assert len(normalized) == 2
    assert normalized[0].role == "assistant"
    assert normalized[1].role == "tool"
    assert normalized[1].tool_call_id == "call_1"


def test_normalize_drops_orphan_tool_message() -> None:
    messages = [
        ChatMessage(role="assistant", content="no tools here"),
        ChatMessage(role="tool", content="orphan", tool_call_id="missing_call"),
    ]

    normalized = normalize_history(messages)

    assert len(normalized) == 1
    assert normalized[0].role == "assistant"


def test_normalize_drops_tool_message_before_its_call() -> None:
    messages = [
        ChatMessage(role="tool", content="early", tool_call_id="call_1"),
        ChatMessage(
            role="assistant",
            content="",
            tool_calls=[ToolCall(id="call_1", name="hello")],
        ),
    ]

    assert [m.role for m in normalize_history(messages)] == ["assistant"]


def test_chat_message_round_trips_through_dict() -> None:
    original = ChatMessage(
        role="assistant",
        content="checking",
        tool_calls=[ToolCall(id="call_9", name="clock", arguments='{"timezone": "UTC"}')],
    )

    restored = ChatMessage.from_dict(original.to_dict())

    assert restored.role == "assistant"
    assert restored.tool_calls == original.tool_calls
    assert restored.timestamp == original.timestamp


def test_parse_arguments_falls_back_to_empty_object() -> None:
    assert parse_arguments('{"a": 1}') == {"a": 1}
    assert parse_arguments("{not json") == {}
    assert parse_arguments("[1, 2]") == {}
    assert parse_arguments(None) == {}


def test_wire_event_omits_absent_fields() -> None:
    event = AgentStreamEvent(
        type="done",
        usage=TokenUsage(prompt_tokens=3, completion_tokens=4, total_tokens=7),
    )

    assert event.to_wire() == {
        "type": "done",
        "usage": {"promptTokens": 3, "completionTokens": 4, "totalTokens": 7},
    }
    assert AgentStreamEvent(type="tool_start", tool_name="x", tool_args={}).to_wire() == {
        "type": "tool_start",
        "toolName": "x",
        "toolArgs": {},
    }


def test_token_usage_adds_fieldwise() -> None:
    total = TokenUsage(1, 2, 3) + TokenUsage(10, 20, 30)
    assert total == TokenUsage(11, 22, 33)
