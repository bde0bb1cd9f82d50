"""Provider interfaces — strategy pattern for chat and embedding backends."""

from __future__ import annotations

import abc
import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from threadbot.core.errors import ProviderError, ProviderTimeout, ThreadbotError
from threadbot.memory.models import Message

T = TypeVar("T")


class ChatProvider(abc.ABC):
    """Abstract base for chat-completion providers."""

    @abc.abstractmethod
    async def generate(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> Message:
        """Send a chat request and return the reply as an agent Message."""
        ...


class EmbeddingProvider(abc.ABC):
    """Abstract base for embedding providers."""

    @abc.abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed a single text into a fixed-length vector."""
        ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts. Default: one call per text."""
        return [await self.embed(t) for t in texts]


async def call_with_retries(
    op: str,
    fn: Callable[[], Awaitable[T]],
    timeout_s: float,
    max_retries: int = 2,
    no_retry: tuple[type[BaseException], ...] = (),
) -> T:
    """Await ``fn()`` with a per-attempt timeout and a bounded number of retries.

    Raises
    ------
    ProviderTimeout
        Last attempt timed out.
    ProviderError
        Last attempt failed, or the error is listed in ``no_retry``.
    """
    attempt = 0
    while True:
        try:
            return await asyncio.wait_for(fn(), timeout=timeout_s)
        except ThreadbotError:
            raise
        except asyncio.TimeoutError as e:
            error: ProviderError = ProviderTimeout(f"{op} timed out after {timeout_s}s")
            cause: BaseException = e
        except no_retry as e:
            raise ProviderError(f"{op} failed: {e}") from e
        except Exception as e:
            error = ProviderError(f"{op} failed: {e}")
            cause = e

        if attempt >= max_retries:
            logger.error(f"{op} failed after {attempt + 1} attempt(s): {cause}")
            raise error from cause
        attempt += 1
        logger.warning(f"{op} attempt {attempt} failed ({cause}), retrying")
