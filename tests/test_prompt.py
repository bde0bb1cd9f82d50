"""Tests for threadbot.agent.prompt."""

import dataclasses
import json
from datetime import datetime, timezone

from threadbot.agent.prompt import (
    PromptRequest,
    assemble_prompt,
    format_context,
    has_tool_result_since_user,
    to_provider_message,
)
from threadbot.core.config.schema import DEFAULT_SYSTEM_TEMPLATE
from threadbot.memory.models import Message, RetrievedDocument, ToolCall

NOW = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
TEMPLATE = "Tools: {tool_names}. {system_message} Now: {time}"

LOOKUP = {
    "type": "function",
    "function": {"name": "principle_lookup", "description": "d", "parameters": {}},
}


def test_system_message_rendering():
    req = assemble_prompt(TEMPLATE, [Message.user("hi")], [LOOKUP], system_message="Be brief.", now=NOW)
    system = req.messages[0]
    assert system["role"] == "system"
    assert system["content"] == "Tools: principle_lookup. Be brief. Now: 2026-01-02T03:04:05+00:00"
    assert req.messages[1] == {"role": "user", "content": "hi"}
    assert req.tools == [LOOKUP]


def test_no_tools_renders_none():
    req = assemble_prompt(TEMPLATE, [Message.user("hi")], None, now=NOW)
    assert "Tools: none." in req.messages[0]["content"]
    assert req.tools is None
    assert not req.tools_suppressed


def test_default_template_renders():
    req = assemble_prompt(DEFAULT_SYSTEM_TEMPLATE, [], [LOOKUP], now=NOW)
    content = req.messages[0]["content"]
    assert "principle_lookup" in content
    assert "{tool_names}" not in content
    assert "2026-01-02T03:04:05+00:00" in content


def test_history_order_preserved():
    history = [
        Message.user("q"),
        Message.agent(tool_calls=[ToolCall(id="c1", name="principle_lookup", arguments={"query": "x"})]),
        Message.tool("c1", "[]"),
        Message.agent("answer"),
        Message.user("next"),
    ]
    req = assemble_prompt(TEMPLATE, history, [LOOKUP], now=NOW)
    assert [m["role"] for m in req.messages] == ["system", "user", "assistant", "tool", "assistant", "user"]


def test_context_block_appended():
    docs = [
        RetrievedDocument(content="Use labels.", score=0.91234, metadata={"principle_id": "p1"}),
        RetrievedDocument(content="Keep contrast.", score=0.5),
    ]
    req = assemble_prompt(TEMPLATE, [Message.user("q")], None, context=docs, now=NOW)
    system = req.messages[0]["content"]
    assert system.startswith("Tools: none.")
    assert "# Retrieved Context" in system
    assert "## Document 1 (score: 0.912)" in system
    assert '"principle_id": "p1"' in system
    assert system.index("Use labels.") < system.index("Keep contrast.")


def test_format_context_without_metadata():
    text = format_context([RetrievedDocument(content="x", score=1.0)])
    assert "metadata" not in text


# --- Tool suppression ---

def test_tools_suppressed_after_tool_result():
    history = [
        Message.user("q"),
        Message.agent(tool_calls=[ToolCall(id="c1", name="principle_lookup")]),
        Message.tool("c1", "[]"),
    ]
    req = assemble_prompt(TEMPLATE, history, [LOOKUP], now=NOW)
    assert req.tools is None
    assert req.tools_suppressed
    # tool names still listed in the system message
    assert "principle_lookup" in req.messages[0]["content"]


def test_suppression_resets_on_new_user_message():
    history = [
        Message.user("q"),
        Message.agent(tool_calls=[ToolCall(id="c1", name="principle_lookup")]),
        Message.tool("c1", "[]"),
        Message.agent("done"),
        Message.user("another"),
    ]
    assert not has_tool_result_since_user(history)
    assert assemble_prompt(TEMPLATE, history, [LOOKUP], now=NOW).tools == [LOOKUP]


def test_suppression_disabled():
    history = [
        Message.user("q"),
        Message.agent(tool_calls=[ToolCall(id="c1", name="principle_lookup")]),
        Message.tool("c1", "[]"),
    ]
    req = assemble_prompt(TEMPLATE, history, [LOOKUP], now=NOW, suppress_tools_after_result=False)
    assert req.tools == [LOOKUP]


# --- Provider format ---

def test_agent_message_carries_opaque_fields():
    msg = Message.agent(
        tool_calls=[
            ToolCall(id="c1", name="principle_lookup", arguments={"query": "é"}, extra={"thought_signature": "sig"})
        ],
        provider_metadata={"reasoning_content": "r"},
    )
    d = to_provider_message(msg)
    assert d["role"] == "assistant"
    assert d["reasoning_content"] == "r"
    call = d["tool_calls"][0]
    assert call["id"] == "c1"
    assert json.loads(call["function"]["arguments"]) == {"query": "é"}
    assert call["provider_specific_fields"] == {"thought_signature": "sig"}


def test_tool_message_format():
    d = to_provider_message(Message.tool("c9", "result"))
    assert d == {"role": "tool", "tool_call_id": "c9", "content": "result"}


def test_pure_function():
    history = [Message.user("q")]
    a = assemble_prompt(TEMPLATE, history, [LOOKUP], now=NOW)
    b = assemble_prompt(TEMPLATE, history, [LOOKUP], now=NOW)
    assert a == b


def test_prompt_request_carries_only_provider_inputs():
    names = {f.name for f in dataclasses.fields(PromptRequest)}
    assert names == {"messages", "tools", "tools_suppressed"}
    request = assemble_prompt(TEMPLATE, [Message.user("q")], [LOOKUP], now=NOW)
    assert request.tools == [LOOKUP]
    assert request.tools_suppressed is False
