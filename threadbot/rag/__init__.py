"""RAG module — embedding search over a FAISS vector store."""

from threadbot.rag.retriever import Retriever

__all__ = ["Retriever"]
