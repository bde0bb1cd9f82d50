"""Tool system — ToolRegistry, ToolInvoker, and the factory that builds them."""

from __future__ import annotations

from typing import TYPE_CHECKING

from threadbot.agent.tools.invoker import FailureTracker, ToolInvoker
from threadbot.agent.tools.registry import ToolRegistry, ToolSpec
from threadbot.agent.tools.search import make_search_tools

if TYPE_CHECKING:
    from threadbot.rag.retriever import Retriever


def make_tools(retriever: Retriever, extra: list | None = None) -> ToolRegistry:
    """Create all agent tools and return a frozen ToolRegistry.

    Parameters
    ----------
    retriever : Retriever
        Backs the ``principle_lookup`` tool.
    extra : list, optional
        Additional LangChain tools, registered under the ``custom`` group.
    """
    registry = ToolRegistry()
    registry.register_group("search", make_search_tools(retriever))
    if extra:
        registry.register_group("custom", extra)
    return registry.freeze()


__all__ = ["FailureTracker", "ToolInvoker", "ToolRegistry", "ToolSpec", "make_tools"]
