"""AgentState — LangGraph state definition."""

from __future__ import annotations

import operator
from enum import Enum
from typing import Annotated, TypedDict

from threadbot.memory.models import Message, RetrievedDocument


class Phase(str, Enum):
    """Where the state machine goes next."""

    AGENT = "agent"
    TOOLS = "tools"
    DONE = "done"


class AgentState(TypedDict):
    """
    ``messages`` is append-only: nodes return new messages and the
    ``operator.add`` reducer concatenates them onto the history.
    """

    thread_id: str
    messages: Annotated[list[Message], operator.add]
    phase: Phase
    step_count: int
    # transient prefetch results, never checkpointed
    context: list[RetrievedDocument]
    # tool name -> (last error, consecutive count)
    tool_failures: dict[str, tuple[str, int]]
