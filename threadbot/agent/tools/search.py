"""Search tools — principle lookup over the vector store."""

from __future__ import annotations

from typing import TYPE_CHECKING

from langchain_core.tools import tool
from pydantic import BaseModel, Field

from threadbot.rag.retriever import format_results

if TYPE_CHECKING:
    from threadbot.rag.retriever import Retriever


class PrincipleLookupInput(BaseModel):
    query: str = Field(
        description="The search query (e.g., a question about frontend design)."
    )
    n: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Number of results to return from the search.",
    )


def make_search_tools(retriever: Retriever) -> list:
    """Create the retrieval tool bound to ``retriever``."""

    @tool("principle_lookup", args_schema=PrincipleLookupInput)
    async def principle_lookup(query: str, n: int = 3) -> str:
        """Searches the principles collection for relevant frontend principles."""
        results = await retriever.search(query, k=n)
        return format_results(results)

    return [principle_lookup]
