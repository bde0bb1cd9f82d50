"""Shared fakes — scripted chat model, deterministic embedder, list-backed store."""

from __future__ import annotations

import asyncio
import hashlib
import math
from typing import Any, Callable

import pytest

from threadbot.agent.runner import AgentRunner
from threadbot.agent.tools import make_tools
from threadbot.core.config import Config
from threadbot.core.providers.base import ChatProvider, EmbeddingProvider
from threadbot.memory.checkpoint import InMemoryCheckpointStore
from threadbot.memory.models import Message, RetrievedDocument, ToolCall
from threadbot.rag.retriever import Retriever

EMBED_DIM = 16


class ScriptedChat(ChatProvider):
    """Replays replies in order; the last one repeats forever.

    A reply may be a Message or a callable ``(messages, tools) -> Message``.
    """

    def __init__(self, *replies: Message | Callable[..., Message], delay: float = 0.0) -> None:
        self.replies = list(replies)
        self.calls: list[dict[str, Any]] = []
        self.delay = delay
        self.active = 0
        self.max_active = 0

    async def generate(self, messages, tools=None) -> Message:
        self.calls.append({"messages": messages, "tools": tools})
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        return reply(messages, tools) if callable(reply) else reply


class HashEmbedder(EmbeddingProvider):
    """Bag-of-words hashing embedder. Same text → same vector."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        vec = [0.0] * EMBED_DIM
        for word in text.lower().split():
            h = int(hashlib.md5(word.encode()).hexdigest(), 16)
            vec[h % EMBED_DIM] += 1.0
        norm = math.sqrt(sum(v * v for v in vec)) or 1.0
        return [v / norm for v in vec]


class ListVectorStore:
    """In-memory stand-in for the FAISS store (brute-force cosine)."""

    def __init__(self, documents: list[tuple[str, list[float], dict]] | None = None) -> None:
        self.rows = list(documents or [])
        self.searches = 0

    @property
    def count(self) -> int:
        return len(self.rows)

    async def similarity_search(self, embedding, k):
        self.searches += 1
        scored = [
            RetrievedDocument(
                content=content,
                score=sum(a * b for a, b in zip(embedding, vec)),
                metadata=meta,
            )
            for content, vec, meta in self.rows
        ]
        scored.sort(key=lambda d: d.score, reverse=True)
        return scored[:k]

    async def upsert_many(self, documents, embeddings):
        for doc, vec in zip(documents, embeddings):
            self.rows.append((doc["content"], vec, doc.get("metadata") or {}))
        return len(documents)


def agent_says(text: str) -> Message:
    return Message.agent(content=text)


def agent_calls(*calls: tuple[str, str, dict]) -> Message:
    """``agent_calls(("c1", "principle_lookup", {"query": "x"}), ...)``"""
    return Message.agent(
        tool_calls=[ToolCall(id=cid, name=name, arguments=args) for cid, name, args in calls]
    )


@pytest.fixture
def cfg(tmp_path):
    return Config(
        agent={"system_template": "You are TestBot. Tools: {tool_names}. {system_message} {time}"},
        rag={"prefetch": False},
        database={"path": str(tmp_path / "test.db")},
    )


@pytest.fixture
def embedder():
    return HashEmbedder()


@pytest.fixture
def retriever(embedder):
    return Retriever(embedder, ListVectorStore(), default_k=3)


@pytest.fixture
def make_runner(cfg, retriever):
    """Factory: ``make_runner(chat, store=None, tools=None, config=None)``."""

    def _make(chat, store=None, tools=None, config=None, rag=None):
        rag = rag or retriever
        return AgentRunner(
            config or cfg,
            checkpoints=store if store is not None else InMemoryCheckpointStore(),
            chat=chat,
            registry=make_tools(rag, extra=tools),
            retriever=rag,
        )

    return _make
