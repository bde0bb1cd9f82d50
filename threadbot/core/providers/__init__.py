"""Provider factories — pick chat / embedding backends from config."""

from __future__ import annotations

from threadbot.core.config.schema import Config
from threadbot.core.errors import ConfigurationError
from threadbot.core.providers.base import ChatProvider, EmbeddingProvider, call_with_retries


def make_chat_provider(config: Config) -> ChatProvider:
    from threadbot.core.providers.litellm_llm import LiteLLMChat

    return LiteLLMChat(config)


def make_embedding_provider(config: Config) -> EmbeddingProvider:
    backend = config.rag.embedding_backend
    if backend == "litellm":
        from threadbot.core.providers.litellm_llm import LiteLLMEmbeddings

        return LiteLLMEmbeddings(config)
    if backend == "sentence-transformers":
        from threadbot.core.providers.local import SentenceTransformerEmbeddings

        return SentenceTransformerEmbeddings(
            config.rag.embedding_model, timeout_s=config.providers.timeout_s
        )
    raise ConfigurationError(f"unknown embedding backend '{backend}'")


__all__ = [
    "ChatProvider",
    "EmbeddingProvider",
    "call_with_retries",
    "make_chat_provider",
    "make_embedding_provider",
]
