import pytest

from helpers import roles
from parley.agent.types import ChatMessage, ToolCall
from parley.sessions.store import SessionStore, session_key, trim_history


@pytest.fixture
async def store(tmp_path):
    s = SessionStore(tmp_path / "db" / "sessions.db", max_history=4)
    await s.initialize()
    yield s
    await s.close()


def msg(role: str, content: str = "", **kwargs) -> ChatMessage:
    return ChatMessage(role=role, content=content, **kwargs)


@pytest.mark.asyncio
async def test_get_or_create_is_idempotent(store) -> None:
    first = await store.get_or_create("feishu", "ou_1")
    second = await store.get_or_create("feishu", "ou_1")

    assert first.id == second.id == session_key("feishu", "ou_1") == "feishu:ou_1"
    assert first.created_at == second.created_at
    assert len(await store.list_sessions()) == 1


@pytest.mark.asyncio
async def test_sessions_are_keyed_by_channel_and_peer(store) -> None:
    a = await store.get_or_create("feishu", "ou_1")
    b = await store.get_or_create("api", "ou_1")
    await store.append(a.id, msg("user", "hello from feishu"))

    assert await store.get_messages(b.id) == []
    assert [m.content for m in await store.get_messages(a.id)] == ["hello from feishu"]


@pytest.mark.asyncio
async def test_append_trims_to_window(store) -> None:
    session = await store.get_or_create("api", "bob")
    for i in range(6):
        await store.append(session.id, msg("user", f"m{i}"))

    assert [m.content for m in await store.get_messages(session.id)] == ["m2", "m3", "m4", "m5"]


@pytest.mark.asyncio
async def test_tool_calls_survive_persistence(store) -> None:
    session = await store.get_or_create("api", "bob")
    call = ToolCall(id="call_1", name="clock", arguments="{}")
    await store.append(session.id, msg("assistant", tool_calls=[call]))
    await store.append(session.id, msg("tool", "ok", tool_call_id="call_1"))

    stored = await store.get_messages(session.id)

    assert stored[0].tool_calls == [call]
    assert stored[1].tool_call_id == "call_1"


@pytest.mark.asyncio
async def test_reset_clears_transcript_but_keeps_session(store) -> None:
    session = await store.get_or_create("api", "bob")
    await store.append(session.id, msg("user", "hi"))

    assert await store.reset(session.id) is True
    assert await store.get_messages(session.id) == []
    kept = await store.get(session.id)
    assert kept is not None
    assert kept.created_at == session.created_at


@pytest.mark.asyncio
async def test_reset_and_reads_of_unknown_session(store) -> None:
    assert await store.reset("api:ghost") is False
    assert await store.get("api:ghost") is None
    assert await store.get_messages("api:ghost") == []

    await store.append("api:ghost", msg("user", "lost"))
    assert await store.get("api:ghost") is None


@pytest.mark.asyncio
async def test_list_sessions_most_recent_first(store) -> None:
    older = await store.get_or_create("api", "a")
    newer = await store.get_or_create("api", "b")
    await store.append(older.id, msg("user", "bump"))

    listed = await store.list_sessions()

    assert [s.id for s in listed] == [older.id, newer.id]
    assert listed[0].summary()["message_count"] == 1


def test_trim_keeps_short_history_untouched() -> None:
    messages = [msg("user", "a"), msg("assistant", "b")]

    assert trim_history(messages, 5) == messages


def test_trim_drops_leading_tool_results() -> None:
    messages = [
        msg("user", "q"),
        msg("assistant", tool_calls=[ToolCall(id="c1", name="x"), ToolCall(id="c2", name="y")]),
        msg("tool", "r1", tool_call_id="c1"),
        msg("tool", "r2", tool_call_id="c2"),
        msg("assistant", "answer"),
    ]

    assert roles(trim_history(messages, 3)) == ["assistant"]
    assert roles(trim_history(messages, 4)) == ["assistant", "tool", "tool", "assistant"]
