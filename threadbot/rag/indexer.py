"""Index build utilities — bulk ingest JSON records into the vector store."""

from __future__ import annotations

import json
from collections import defaultdict
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

from threadbot.core.config.schema import RagConfig
from threadbot.core.providers.base import EmbeddingProvider

if TYPE_CHECKING:
    from threadbot.rag.vector_store import VectorStore


def render_text(item: dict[str, Any], template: str) -> str:
    """Convert item dict to searchable text using config template.

    List values are joined with ", " so ``{keyConcepts}`` reads naturally.
    """
    values = {
        k: ", ".join(map(str, v)) if isinstance(v, list) else str(v)
        for k, v in item.items()
    }
    return template.format_map(defaultdict(str, values))


def load_records(path: str | Path) -> list[dict[str, Any]]:
    """Read a JSON array of records."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON array of records")
    return [r for r in data if isinstance(r, dict)]


async def ingest_records(
    records: list[dict[str, Any]],
    embedder: EmbeddingProvider,
    store: VectorStore,
    config: RagConfig,
) -> int:
    """Embed ``records`` in batches and upsert them. Returns documents written."""
    documents = []
    for i, record in enumerate(records):
        documents.append({
            "id": str(record.get(config.id_field, i)),
            "content": render_text(record, config.text_template),
            "metadata": record,
        })

    written = 0
    for start in range(0, len(documents), config.batch_size):
        batch = documents[start:start + config.batch_size]
        embeddings = await embedder.embed_batch([d["content"] for d in batch])
        written += await store.upsert_many(batch, embeddings)
        logger.info(f"Ingested {written}/{len(documents)} documents")
    return written
