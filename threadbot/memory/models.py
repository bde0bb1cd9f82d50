"""Pydantic data models — conversation state and API request/response."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ════════════════════════════════════════════════════════════
# CONVERSATION
# ════════════════════════════════════════════════════════════

Role = Literal["user", "agent", "tool"]


class ToolCall(BaseModel):
    """A tool request emitted by the model.

    ``extra`` holds provider-specific payload (e.g. Gemini thought
    signatures). It is opaque and must round-trip unchanged.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    extra: dict[str, Any] | None = None


class Message(BaseModel):
    """Immutable conversation message."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None
    is_error: bool = False
    provider_metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_role_fields(self) -> Message:
        if self.tool_calls and self.role != "agent":
            raise ValueError("only agent messages may carry tool_calls")
        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("tool messages require tool_call_id")
        if self.role != "tool" and self.tool_call_id is not None:
            raise ValueError("tool_call_id is only valid on tool messages")
        if self.role == "agent" and self.tool_calls:
            ids = [tc.id for tc in self.tool_calls]
            if len(ids) != len(set(ids)):
                raise ValueError("tool call ids must be unique within a message")
        return self

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role="user", content=content)

    @classmethod
    def agent(
        cls,
        content: str = "",
        tool_calls: list[ToolCall] | tuple[ToolCall, ...] = (),
        provider_metadata: dict[str, Any] | None = None,
    ) -> Message:
        return cls(
            role="agent",
            content=content,
            tool_calls=tuple(tool_calls),
            provider_metadata=provider_metadata or {},
        )

    @classmethod
    def tool(cls, tool_call_id: str, content: str, is_error: bool = False) -> Message:
        return cls(role="tool", content=content, tool_call_id=tool_call_id, is_error=is_error)


class Thread(BaseModel):
    """A persisted conversation. ``messages`` is append-only."""

    model_config = ConfigDict(frozen=True)

    id: str
    messages: tuple[Message, ...] = ()
    # agent/tool cycles in the current invocation; reset by the runner
    step_count: int = 0

    def append(self, *messages: Message) -> Thread:
        return self.model_copy(update={"messages": self.messages + tuple(messages)})

    def last_agent_message(self) -> Message | None:
        for msg in reversed(self.messages):
            if msg.role == "agent":
                return msg
        return None

    def pending_tool_calls(self) -> list[ToolCall]:
        """Tool calls of the trailing agent turn that have no tool response yet."""
        for i in range(len(self.messages) - 1, -1, -1):
            msg = self.messages[i]
            if msg.role == "tool":
                continue
            if msg.role != "agent" or not msg.tool_calls:
                return []
            answered = {m.tool_call_id for m in self.messages[i + 1:]}
            return [tc for tc in msg.tool_calls if tc.id not in answered]
        return []

    def count(self, role: Role) -> int:
        return sum(1 for m in self.messages if m.role == role)


class RetrievedDocument(BaseModel):
    """One similarity-search hit. Transient, never persisted with a Thread."""

    content: str
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)


# ════════════════════════════════════════════════════════════
# API REQUEST / RESPONSE
# ════════════════════════════════════════════════════════════


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)


class NewChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    thread_id: str = Field(alias="threadId")
    response: str


class ChatResponse(BaseModel):
    response: str


class ErrorBody(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    error: ErrorBody


class ThreadHistory(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    thread_id: str = Field(alias="threadId")
    messages: list[Message]


class HealthResponse(BaseModel):
    status: str
    version: str = ""
    model: str = ""
    documents_count: int = 0
