"""Tests for threadbot.memory.checkpoint and models."""

import asyncio
import time

import pytest
from pydantic import ValidationError

from threadbot.core.errors import CheckpointError
from threadbot.memory.checkpoint import InMemoryCheckpointStore, SQLiteCheckpointStore
from threadbot.memory.models import Message, Thread, ToolCall


@pytest.fixture(params=["sqlite", "memory"])
def store(request, tmp_path):
    if request.param == "sqlite":
        return SQLiteCheckpointStore(str(tmp_path / "test.db"))
    return InMemoryCheckpointStore()


def _thread(tid="t1") -> Thread:
    return Thread(
        id=tid,
        messages=(
            Message.user("hello"),
            Message.agent(
                tool_calls=[
                    ToolCall(
                        id="c1",
                        name="principle_lookup",
                        arguments={"query": "forms", "n": 2},
                        extra={"thought_signature": "abc=="},
                    )
                ],
                provider_metadata={"reasoning_content": "thinking..."},
            ),
            Message.tool("c1", "Error [tool_execution_error]: boom", is_error=True),
            Message.agent("Here you go."),
        ),
        step_count=1,
    )


async def test_round_trip(store):
    thread = _thread()
    await store.save(thread)
    loaded = await store.load("t1")
    assert loaded == thread
    assert loaded.messages[1].tool_calls[0].extra == {"thought_signature": "abc=="}
    assert loaded.messages[1].provider_metadata["reasoning_content"] == "thinking..."
    assert loaded.messages[2].is_error


async def test_unknown_id(store):
    assert await store.load("nope") is None


async def test_save_idempotent(store):
    thread = _thread()
    await store.save(thread)
    await store.save(thread)
    assert await store.load("t1") == thread
    assert len(await store.list_threads()) == 1


async def test_newer_snapshot_replaces_older(store):
    first = Thread(id="t1", messages=(Message.user("a"),))
    second = first.append(Message.agent("b"))
    await store.save(first)
    await store.save(second)
    assert await store.load("t1") == second


async def test_older_snapshot_does_not_overwrite(store):
    first = Thread(id="t1", messages=(Message.user("a"),))
    second = first.append(Message.agent("b"), Message.user("c"))
    await store.save(second)
    await store.save(first)
    assert await store.load("t1") == second


async def test_timed_out_save_cannot_roll_back_newer_save(tmp_path):
    store = SQLiteCheckpointStore(str(tmp_path / "test.db"), timeout_s=0.1)
    original = store._upsert_row
    calls = []

    def slow_first_upsert(*args):
        calls.append(args[0])
        if len(calls) == 1:
            time.sleep(0.3)
        original(*args)

    store._upsert_row = slow_first_upsert

    short = Thread(id="t1", messages=(Message.user("a"),))
    longer = short.append(Message.agent("b"), Message.user("c"))

    with pytest.raises(CheckpointError, match="timed out"):
        await store.save(short)
    await store.save(longer)

    # let the abandoned worker thread finish its write
    await asyncio.sleep(0.5)
    assert len(calls) == 2
    assert await store.load("t1") == longer


async def test_delete(store):
    await store.save(_thread())
    assert await store.delete("t1") is True
    assert await store.load("t1") is None
    assert await store.delete("t1") is False


async def test_list_threads(store):
    await store.save(_thread("a"))
    await store.save(_thread("b"))
    rows = await store.list_threads()
    assert {r["thread_id"] for r in rows} == {"a", "b"}
    assert all(r["message_count"] == 4 for r in rows)
    assert len(await store.list_threads(limit=1)) == 1


async def test_in_memory_store_isolated_from_callers():
    store = InMemoryCheckpointStore()
    thread = Thread(id="t", messages=(Message.user("x"),))
    await store.save(thread)
    await store.save(thread.append(Message.agent("y")))
    assert len(thread.messages) == 1
    assert len((await store.load("t")).messages) == 2


async def test_sqlite_survives_reopen(tmp_path):
    path = str(tmp_path / "test.db")
    await SQLiteCheckpointStore(path).save(_thread())
    assert await SQLiteCheckpointStore(path).load("t1") == _thread()


# --- Models ---

def test_thread_is_append_only():
    thread = Thread(id="t", messages=(Message.user("x"),))
    longer = thread.append(Message.agent("y"))
    assert thread.messages != longer.messages
    assert longer.messages[:1] == thread.messages
    with pytest.raises(ValidationError):
        thread.id = "other"


def test_message_role_rules():
    with pytest.raises(ValidationError):
        Message(role="tool", content="no id")
    with pytest.raises(ValidationError):
        Message(role="user", content="x", tool_calls=(ToolCall(id="a", name="t"),))
    with pytest.raises(ValidationError):
        Message.agent(tool_calls=[ToolCall(id="a", name="t"), ToolCall(id="a", name="t")])


def test_pending_tool_calls():
    call = Message.agent(tool_calls=[ToolCall(id="a", name="t"), ToolCall(id="b", name="t")])
    thread = Thread(id="t", messages=(Message.user("q"), call, Message.tool("a", "ok")))
    assert [tc.id for tc in thread.pending_tool_calls()] == ["b"]
    assert thread.append(Message.tool("b", "ok")).pending_tool_calls() == []
    assert Thread(id="t", messages=(Message.user("q"),)).pending_tool_calls() == []
