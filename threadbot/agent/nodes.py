"""Graph nodes — agent (ask the model) and tools (act on its requests)."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from langgraph.graph import END
from loguru import logger

from threadbot.agent.prompt import assemble_prompt
from threadbot.agent.state import AgentState, Phase
from threadbot.agent.tools import FailureTracker, ToolInvoker
from threadbot.core.config.schema import Config
from threadbot.core.errors import RecursionLimitExceeded
from threadbot.core.providers.base import ChatProvider


def make_nodes(config: Config, chat: ChatProvider, invoker: ToolInvoker):
    """
    Create node functions closed over config, provider, and invoker.

    Returns dict of {node_name: callable} for graph registration.
    """
    agent_cfg = config.agent
    tool_defs = invoker.registry.definitions() or None

    async def agent(state: AgentState) -> dict[str, Any]:
        """AGENT: call the model over the full history."""
        request = assemble_prompt(
            agent_cfg.system_template,
            state["messages"],
            tool_definitions=tool_defs,
            context=state.get("context"),
            system_message=agent_cfg.system_message,
            now=datetime.now(timezone.utc),
            suppress_tools_after_result=agent_cfg.suppress_tools_after_result,
        )
        if request.tools_suppressed:
            logger.debug("Tool result present, calling model without tools")

        reply = await chat.generate(request.messages, request.tools)

        if reply.tool_calls:
            names = [tc.name for tc in reply.tool_calls]
            logger.debug(f"LLM tool calls: {names} (step {state['step_count']})")
            if state["step_count"] >= agent_cfg.recursion_limit:
                logger.error(
                    f"Recursion limit reached for thread {state['thread_id']} "
                    f"after {state['step_count']} tool cycles"
                )
                raise RecursionLimitExceeded(state["step_count"], agent_cfg.recursion_limit)
            phase = Phase.TOOLS
        else:
            snippet = (reply.content or "")[:80]
            logger.debug(f"LLM response (no tools): {snippet!r}")
            phase = Phase.DONE

        return {"messages": [reply], "phase": phase}

    async def tools(state: AgentState) -> dict[str, Any]:
        """TOOLS: answer every tool call of the last agent message, in order."""
        last_msg = state["messages"][-1]
        tracker = FailureTracker(dict(state.get("tool_failures") or {}))
        results = await invoker.invoke_batch(last_msg.tool_calls, tracker)
        return {
            "messages": results,
            "phase": Phase.AGENT,
            "step_count": state["step_count"] + 1,
            "tool_failures": tracker.snapshot(),
        }

    return {"agent": agent, "tools": tools}


def route_after_agent(state: AgentState) -> str:
    """Conditional edge: after agent, go to tools or finish."""
    if state["phase"] == Phase.TOOLS:
        return "tools"
    return END
