"""Local embeddings with sentence-transformers."""

from __future__ import annotations

import asyncio

from loguru import logger

from threadbot.core.errors import ProviderError, ProviderTimeout
from threadbot.core.providers.base import EmbeddingProvider


class SentenceTransformerEmbeddings(EmbeddingProvider):
    """Runs a SentenceTransformer model in a worker thread.

    The model is loaded lazily on first use so startup stays cheap.
    """

    def __init__(self, model_name: str, timeout_s: float = 60.0) -> None:
        self.model_name = model_name
        self.timeout_s = timeout_s
        self._model = None

    def _get_model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            logger.info(f"Loading embedding model: {self.model_name}")
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def _encode(self, texts: list[str]) -> list[list[float]]:
        vectors = self._get_model().encode(
            texts,
            convert_to_numpy=True,
            normalize_embeddings=True,
            show_progress_bar=False,
        )
        return [v.tolist() for v in vectors]

    async def embed(self, text: str) -> list[float]:
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        cleaned = [t.replace("\n", " ") for t in texts]
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._encode, cleaned), timeout=self.timeout_s
            )
        except asyncio.TimeoutError as e:
            raise ProviderTimeout(f"Local embedding timed out after {self.timeout_s}s") from e
        except (OSError, RuntimeError, ValueError) as e:
            raise ProviderError(f"Local embedding failed: {e}") from e
