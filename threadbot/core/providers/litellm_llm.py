"""LiteLLM providers — chat completions and remote embeddings."""

from __future__ import annotations

import json
import os
from typing import Any

import litellm
from loguru import logger

from threadbot.core.config.schema import Config
from threadbot.core.providers.base import ChatProvider, EmbeddingProvider, call_with_retries
from threadbot.memory.models import Message, ToolCall

litellm.suppress_debug_info = True

# Client-side mistakes; retrying cannot help
_NO_RETRY = (
    litellm.AuthenticationError,
    litellm.BadRequestError,
    litellm.NotFoundError,
)


class LiteLLMChat(ChatProvider):
    """LiteLLM-backed chat provider (gemini/*, openai/*, anthropic/*, ...)."""

    def __init__(self, config: Config, model: str | None = None) -> None:
        setup_keys(config)
        self.model = model or config.agent.model
        self.temperature = config.agent.temperature
        self.max_tokens = config.agent.max_tokens
        self.api_base = config.get_api_base(self.model)
        self.timeout_s = config.providers.timeout_s
        self.max_retries = config.providers.max_retries
        self.signature_fallback = config.providers.thought_signature_fallback

    async def generate(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> Message:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        if self.api_base:
            kwargs["api_base"] = self.api_base

        response = await call_with_retries(
            f"LLM call ({self.model})",
            lambda: litellm.acompletion(**kwargs),
            timeout_s=self.timeout_s,
            max_retries=self.max_retries,
            no_retry=_NO_RETRY,
        )
        message = self._to_message(response)
        if message.tool_calls and "gemini" in self.model:
            message = self._ensure_thought_signature(message)
        return message

    def _ensure_thought_signature(self, message: Message) -> Message:
        """Gemini 3 needs a signature on the first replayed tool call."""
        first = message.tool_calls[0]
        extra = dict(first.extra or {})
        if extra.get("thought_signature"):
            return message
        extra["thought_signature"] = self.signature_fallback
        patched = first.model_copy(update={"extra": extra})
        return message.model_copy(update={"tool_calls": (patched, *message.tool_calls[1:])})

    @staticmethod
    def _to_message(response: Any) -> Message:
        """Convert litellm response to an agent Message."""
        choice = response.choices[0]
        msg = choice.message

        tool_calls: list[ToolCall] = []
        for tc in getattr(msg, "tool_calls", None) or []:
            args = tc.function.arguments
            if isinstance(args, str):
                try:
                    args = json.loads(args) if args.strip() else {}
                except json.JSONDecodeError:
                    args = {"raw": args}
            if not isinstance(args, dict):
                args = {"raw": args}
            extra = getattr(tc, "provider_specific_fields", None) or None
            tool_calls.append(
                ToolCall(id=tc.id, name=tc.function.name, arguments=args, extra=extra)
            )

        metadata: dict[str, Any] = {}
        reasoning = getattr(msg, "reasoning_content", None)
        if reasoning:
            metadata["reasoning_content"] = reasoning
        blocks = getattr(msg, "thinking_blocks", None)
        if blocks:
            metadata["thinking_blocks"] = blocks

        usage = getattr(response, "usage", None)
        logger.debug(
            f"LLM finish={choice.finish_reason or 'stop'} "
            f"tokens={getattr(usage, 'total_tokens', 0)} tool_calls={len(tool_calls)}"
        )
        return Message.agent(
            content=msg.content or "",
            tool_calls=tool_calls,
            provider_metadata=metadata,
        )


class LiteLLMEmbeddings(EmbeddingProvider):
    """Remote embeddings through ``litellm.aembedding``."""

    def __init__(self, config: Config, model: str | None = None) -> None:
        setup_keys(config)
        self.model = model or config.rag.embedding_model
        self.api_base = config.get_api_base(self.model)
        self.timeout_s = config.providers.timeout_s
        self.max_retries = config.providers.max_retries

    async def embed(self, text: str) -> list[float]:
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        # Embedding endpoints handle newlines poorly
        cleaned = [t.replace("\n", " ") for t in texts]
        kwargs: dict[str, Any] = {"model": self.model, "input": cleaned}
        if self.api_base:
            kwargs["api_base"] = self.api_base

        response = await call_with_retries(
            f"Embedding call ({self.model})",
            lambda: litellm.aembedding(**kwargs),
            timeout_s=self.timeout_s,
            max_retries=self.max_retries,
            no_retry=_NO_RETRY,
        )
        rows = sorted(response.data, key=lambda d: _field(d, "index"))
        return [list(_field(d, "embedding")) for d in rows]


def _field(item: Any, name: str) -> Any:
    """litellm returns dicts or objects depending on the backend."""
    return item[name] if isinstance(item, dict) else getattr(item, name)


def setup_keys(config: Config) -> None:
    """Set env vars for LiteLLM from config."""
    for env, val in [
        ("ANTHROPIC_API_KEY", config.providers.anthropic.api_key),
        ("OPENAI_API_KEY", config.providers.openai.api_key),
        ("OPENROUTER_API_KEY", config.providers.openrouter.api_key),
        ("GEMINI_API_KEY", config.providers.gemini.api_key),
        ("GROQ_API_KEY", config.providers.groq.api_key),
        ("DEEPSEEK_API_KEY", config.providers.deepseek.api_key),
    ]:
        if val:
            os.environ.setdefault(env, val)
