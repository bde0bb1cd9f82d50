"""FAISS vector store — cosine similarity over normalized embeddings."""

from __future__ import annotations

import abc
import asyncio
import json
import threading
from pathlib import Path
from typing import Any

import faiss
import numpy as np
from loguru import logger

from threadbot.memory.models import RetrievedDocument


class VectorStore(abc.ABC):
    """Similarity search + bulk upsert over embedded documents."""

    @abc.abstractmethod
    async def similarity_search(
        self, embedding: list[float], k: int
    ) -> list[RetrievedDocument]:
        """Return up to ``k`` documents by descending cosine similarity."""

    @abc.abstractmethod
    async def upsert_many(
        self, documents: list[dict[str, Any]], embeddings: list[list[float]]
    ) -> int:
        """Insert or replace documents (matched by ``id``). Returns count written."""

    @property
    @abc.abstractmethod
    def count(self) -> int: ...


class FaissVectorStore(VectorStore):
    """
    ``IndexFlatIP`` over L2-normalized vectors, persisted next to a JSON
    document table.

    Files under ``index_path``:
        index.faiss      — vectors, row i belongs to documents[i]
        documents.json   — [{"id", "content", "metadata"}, ...]
    """

    def __init__(self, index_path: str | None = None) -> None:
        self.index_path = Path(index_path) if index_path else None
        self.documents: list[dict[str, Any]] = []
        self.index: faiss.Index | None = None
        self._lock = threading.Lock()
        self._load()

    # ── Public API ──────────────────────────────────────────

    @property
    def count(self) -> int:
        return len(self.documents)

    @property
    def dimension(self) -> int | None:
        return self.index.d if self.index is not None else None

    async def similarity_search(
        self, embedding: list[float], k: int
    ) -> list[RetrievedDocument]:
        return await asyncio.to_thread(self._search, embedding, k)

    async def upsert_many(
        self, documents: list[dict[str, Any]], embeddings: list[list[float]]
    ) -> int:
        return await asyncio.to_thread(self._upsert, documents, embeddings)

    def clear(self) -> None:
        """Drop all documents and delete persisted files."""
        with self._lock:
            self.documents = []
            self.index = None
            if self.index_path:
                for name in ("index.faiss", "documents.json"):
                    f = self.index_path / name
                    if f.exists():
                        f.unlink()
        logger.info("Vector store cleared")

    # ── Internal ────────────────────────────────────────────

    def _search(self, embedding: list[float], k: int) -> list[RetrievedDocument]:
        with self._lock:
            if self.index is None or not self.documents or k < 1:
                return []
            query = _normalize(np.asarray([embedding], dtype="float32"))
            if query.shape[1] != self.index.d:
                raise ValueError(
                    f"query dimension {query.shape[1]} != index dimension {self.index.d}"
                )
            scores, indices = self.index.search(query, min(k, len(self.documents)))

            results: list[RetrievedDocument] = []
            for score, idx in zip(scores[0], indices[0]):
                if idx < 0:
                    continue
                doc = self.documents[idx]
                results.append(
                    RetrievedDocument(
                        content=doc["content"],
                        score=float(score),
                        metadata=doc.get("metadata") or {},
                    )
                )
            return results

    def _upsert(self, documents: list[dict[str, Any]], embeddings: list[list[float]]) -> int:
        if len(documents) != len(embeddings):
            raise ValueError(
                f"{len(documents)} documents but {len(embeddings)} embeddings"
            )
        if not documents:
            return 0

        new_vectors = _normalize(np.asarray(embeddings, dtype="float32"))
        with self._lock:
            if self.index is not None and new_vectors.shape[1] != self.index.d:
                raise ValueError(
                    f"embedding dimension {new_vectors.shape[1]} != index dimension {self.index.d}"
                )

            position = {str(d["id"]): i for i, d in enumerate(self.documents)}
            vectors = (
                self.index.reconstruct_n(0, self.index.ntotal)
                if self.index is not None
                else np.zeros((0, new_vectors.shape[1]), dtype="float32")
            )
            appended: list[np.ndarray] = []
            for doc, vec in zip(documents, new_vectors):
                record = {
                    "id": str(doc["id"]),
                    "content": doc["content"],
                    "metadata": doc.get("metadata") or {},
                }
                if record["id"] in position:
                    i = position[record["id"]]
                    self.documents[i] = record
                    vectors[i] = vec
                else:
                    position[record["id"]] = len(self.documents)
                    self.documents.append(record)
                    appended.append(vec)

            if appended:
                vectors = np.vstack([vectors, np.stack(appended)])
            index = faiss.IndexFlatIP(vectors.shape[1])
            index.add(vectors)
            self.index = index
            self._save()

        logger.info(f"Upserted {len(documents)} documents (total {len(self.documents)})")
        return len(documents)

    def _load(self) -> None:
        if self.index_path is None:
            return
        index_file = self.index_path / "index.faiss"
        docs_file = self.index_path / "documents.json"
        if not index_file.exists() or not docs_file.exists():
            logger.info(f"No vector index at {self.index_path}, starting empty")
            return

        with open(docs_file, encoding="utf-8") as f:
            documents = json.load(f)
        index = faiss.read_index(str(index_file))
        if index.ntotal != len(documents):
            logger.warning(
                f"Index/document mismatch ({index.ntotal} vs {len(documents)}), starting empty"
            )
            return
        self.documents = documents
        self.index = index
        logger.info(f"Loaded {len(documents)} documents from {self.index_path}")

    def _save(self) -> None:
        if self.index_path is None or self.index is None:
            return
        self.index_path.mkdir(parents=True, exist_ok=True)
        faiss.write_index(self.index, str(self.index_path / "index.faiss"))
        with open(self.index_path / "documents.json", "w", encoding="utf-8") as f:
            json.dump(self.documents, f, ensure_ascii=False)


def _normalize(vectors: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return (vectors / norms).astype("float32")
