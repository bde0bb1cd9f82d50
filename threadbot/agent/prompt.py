"""Prompt assembly — system template + retrieved context + history.

Everything here is a pure function of its inputs; the caller supplies the
current time.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Sequence

from threadbot.memory.models import Message, RetrievedDocument

_ROLE_MAP = {"user": "user", "agent": "assistant", "tool": "tool"}


@dataclass(frozen=True)
class PromptRequest:
    """What the chat provider receives."""

    messages: list[dict[str, Any]]
    tools: list[dict[str, Any]] | None = None
    tools_suppressed: bool = False


def assemble_prompt(
    system_template: str,
    history: Sequence[Message],
    tool_definitions: list[dict[str, Any]] | None = None,
    context: Sequence[RetrievedDocument] | None = None,
    system_message: str = "",
    now: datetime | None = None,
    suppress_tools_after_result: bool = True,
) -> PromptRequest:
    """Build a model request.

    Parameters
    ----------
    system_template : str
        Format string; may reference ``{tool_names}``, ``{system_message}``
        and ``{time}``.
    history : sequence of Message
        Full thread history in conversation order.
    tool_definitions : list of dict, optional
        OpenAI-format tool definitions.
    context : sequence of RetrievedDocument, optional
        Appended to the system message as a retrieved-context block.
    suppress_tools_after_result : bool
        Withhold tools when a tool result follows the latest user message,
        so the model answers from that result.
    """
    tool_names = [d["function"]["name"] for d in tool_definitions or []]
    system = render_system(
        system_template,
        tool_names=tool_names,
        system_message=system_message,
        now=now or datetime.now(),
    )
    if context:
        system = f"{system}\n\n{format_context(context)}"

    messages: list[dict[str, Any]] = [{"role": "system", "content": system}]
    messages.extend(to_provider_message(m) for m in history)

    suppressed = bool(
        tool_definitions
        and suppress_tools_after_result
        and has_tool_result_since_user(history)
    )
    tools = None if suppressed or not tool_definitions else list(tool_definitions)
    return PromptRequest(messages=messages, tools=tools, tools_suppressed=suppressed)


def render_system(
    template: str,
    tool_names: list[str],
    system_message: str,
    now: datetime,
) -> str:
    return template.format(
        tool_names=", ".join(tool_names) or "none",
        system_message=system_message,
        time=now.isoformat(),
    )


def format_context(documents: Sequence[RetrievedDocument]) -> str:
    """Serialize retrieved documents as a structured text block."""
    lines = ["# Retrieved Context", ""]
    for i, doc in enumerate(documents, 1):
        lines.append(f"## Document {i} (score: {doc.score:.3f})")
        lines.append(doc.content)
        if doc.metadata:
            lines.append(
                "metadata: " + json.dumps(doc.metadata, ensure_ascii=False, default=str)
            )
        lines.append("")
    return "\n".join(lines).rstrip()


def has_tool_result_since_user(history: Sequence[Message]) -> bool:
    for msg in reversed(history):
        if msg.role == "tool":
            return True
        if msg.role == "user":
            return False
    return False


def to_provider_message(msg: Message) -> dict[str, Any]:
    """Convert a Message to the provider's dict format.

    Opaque provider fields (``ToolCall.extra``, ``provider_metadata``) are
    copied through untouched.
    """
    role = _ROLE_MAP[msg.role]
    if msg.role == "tool":
        return {"role": role, "tool_call_id": msg.tool_call_id, "content": msg.content}

    d: dict[str, Any] = {"role": role, "content": msg.content}
    if msg.role == "agent":
        d.update(msg.provider_metadata)
        if msg.tool_calls:
            d["tool_calls"] = [_tool_call_dict(tc) for tc in msg.tool_calls]
    return d


def _tool_call_dict(tc) -> dict[str, Any]:
    d: dict[str, Any] = {
        "id": tc.id,
        "type": "function",
        "function": {
            "name": tc.name,
            "arguments": json.dumps(tc.arguments, ensure_ascii=False),
        },
    }
    if tc.extra is not None:
        d["provider_specific_fields"] = tc.extra
    return d
