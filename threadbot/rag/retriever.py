"""Retriever — query text to ranked documents via embedding + vector search."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from loguru import logger

from threadbot.core.errors import ThreadbotError, ToolArgumentInvalid, ToolExecutionError
from threadbot.core.providers.base import EmbeddingProvider
from threadbot.memory.models import RetrievedDocument

if TYPE_CHECKING:
    from threadbot.rag.vector_store import VectorStore


class Retriever:
    """Embeds a query and asks the vector store for its nearest documents."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        store: VectorStore,
        default_k: int = 3,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.default_k = default_k

    @property
    def count(self) -> int:
        return self.store.count

    async def search(self, query: str, k: int | None = None) -> list[RetrievedDocument]:
        """Return at most ``k`` documents, highest score first.

        Order is the store's; ties are not re-sorted here. An empty query
        returns ``[]`` without touching the embedding provider.

        Raises
        ------
        ToolArgumentInvalid
            ``k`` below 1.
        ToolExecutionError
            Embedding provider or vector store failed.
        """
        k = self.default_k if k is None else k
        if k < 1:
            raise ToolArgumentInvalid(f"k must be >= 1, got {k}")
        if not query or not query.strip():
            return []

        try:
            embedding = await self.embedder.embed(query)
            results = await self.store.similarity_search(embedding, k)
        except ThreadbotError as e:
            raise ToolExecutionError(f"Retrieval failed: {e.message}") from e
        except (ValueError, RuntimeError, OSError) as e:
            raise ToolExecutionError(f"Retrieval failed: {e}") from e

        logger.debug(f"Retrieved {len(results)} documents for {query[:60]!r} (k={k})")
        return results[:k]


def format_results(results: list[RetrievedDocument]) -> str:
    """Serialize results as LLM-readable JSON: ``[[document, score], ...]``."""
    return json.dumps(
        [
            [{"pageContent": doc.content, "metadata": doc.metadata}, doc.score]
            for doc in results
        ],
        indent=2,
        ensure_ascii=False,
        default=str,
    )
