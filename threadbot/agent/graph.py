"""LangGraph StateGraph — compile agent graph."""

from __future__ import annotations

from langgraph.graph import END, START, StateGraph

from threadbot.agent.nodes import make_nodes, route_after_agent
from threadbot.agent.state import AgentState
from threadbot.agent.tools import ToolInvoker
from threadbot.core.config.schema import Config
from threadbot.core.providers.base import ChatProvider


def create_graph(config: Config, chat: ChatProvider, invoker: ToolInvoker):
    """
    Build and compile the agent graph.

    Graph flow:
        START → agent ⇄ tools
                agent → END   (no tool calls)
    """
    nodes = make_nodes(config, chat, invoker)

    graph = StateGraph(AgentState)
    graph.add_node("agent", nodes["agent"])
    graph.add_node("tools", nodes["tools"])

    graph.add_edge(START, "agent")
    graph.add_conditional_edges("agent", route_after_agent, {"tools": "tools", END: END})
    graph.add_edge("tools", "agent")
    return graph.compile()


def graph_recursion_limit(config: Config) -> int:
    """LangGraph super-step budget: two nodes per tool cycle plus the final answer."""
    return 2 * config.agent.recursion_limit + 3
