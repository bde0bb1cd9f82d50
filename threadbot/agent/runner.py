"""AgentRunner — orchestrator between the checkpoint store and LangGraph."""

from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager

from langgraph.errors import GraphRecursionError
from loguru import logger

from threadbot.agent.graph import create_graph, graph_recursion_limit
from threadbot.agent.state import Phase
from threadbot.agent.tools import ToolInvoker, ToolRegistry
from threadbot.core.config.schema import Config
from threadbot.core.errors import RecursionLimitExceeded, ThreadbotError, ThreadNotFound
from threadbot.core.providers.base import ChatProvider
from threadbot.memory.checkpoint import CheckpointStore
from threadbot.memory.models import Message, RetrievedDocument, Thread
from threadbot.rag.retriever import Retriever

INTERRUPTED_TOOL_RESULT = (
    "Error [interrupted]: this tool call was not completed because the previous run was aborted."
)


class ThreadLocks:
    """One asyncio.Lock per thread id; entries are dropped once nobody waits on them."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, thread_id: str):
        lock = self._locks.setdefault(thread_id, asyncio.Lock())
        self._waiters[thread_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[thread_id] -= 1
            if self._waiters[thread_id] == 0:
                del self._waiters[thread_id]
                self._locks.pop(thread_id, None)

    def __len__(self) -> int:
        return len(self._locks)


class AgentRunner:
    """
    Request-scoped orchestrator.

    Flow (per thread id, mutually exclusive):
        1. Load thread from the checkpoint store (or start a new one)
        2. Close tool calls left unanswered by an aborted run
        3. Append the user message, checkpoint
        4. Prefetch retrieval context (optional)
        5. graph.astream(state) — checkpoint after every step
        6. Return the last agent message
    """

    def __init__(
        self,
        config: Config,
        checkpoints: CheckpointStore,
        chat: ChatProvider,
        registry: ToolRegistry,
        retriever: Retriever | None = None,
    ):
        self.config = config
        self.checkpoints = checkpoints
        self.chat = chat
        self.registry = registry if registry.frozen else registry.freeze()
        self.retriever = retriever
        self.invoker = ToolInvoker(
            self.registry,
            max_failures=config.agent.max_tool_failures,
            timeout_s=config.agent.tool_timeout_s,
            parallel=config.agent.parallel_tool_calls,
        )
        self.locks = ThreadLocks()
        self._graph = create_graph(config, chat, self.invoker)

    async def process(self, message: str, thread_id: str | None = None) -> tuple[str, str]:
        """Process a user message and return (response, thread_id).

        Parameters
        ----------
        message : str
            User message text.
        thread_id : str, optional
            Existing thread id. If None, a new id is generated. Unknown ids
            start a fresh thread under that id.

        Raises
        ------
        RecursionLimitExceeded, ToolExecutionError, ProviderError
            Fatal for this invocation only; the last checkpoint is kept.
        """
        thread_id = thread_id or new_thread_id()
        async with self.locks.hold(thread_id):
            thread = await self.checkpoints.load(thread_id)
            if thread is None:
                logger.info(f"New thread {thread_id}")
                thread = Thread(id=thread_id)

            thread = close_pending_tool_calls(thread)
            thread = thread.append(Message.user(message)).model_copy(update={"step_count": 0})
            await self.checkpoints.save(thread)

            context = await self._prefetch(message)
            final = await self._run(thread, context)

        reply = final.last_agent_message()
        response = reply.content if reply else ""
        logger.info(
            f"Thread {thread_id} done: {final.step_count} tool cycle(s), "
            f"{len(final.messages)} messages"
        )
        return response, thread_id

    async def history(self, thread_id: str) -> Thread:
        thread = await self.checkpoints.load(thread_id)
        if thread is None:
            raise ThreadNotFound(f"Thread '{thread_id}' not found")
        return thread

    async def _run(self, thread: Thread, context: list[RetrievedDocument]) -> Thread:
        """Drive the graph, saving a checkpoint whenever the state changes."""
        limit = self.config.agent.recursion_limit
        initial = {
            "thread_id": thread.id,
            "messages": list(thread.messages),
            "phase": Phase.AGENT,
            "step_count": 0,
            "context": context,
            "tool_failures": {},
        }
        last = thread
        try:
            async for values in self._graph.astream(
                initial,
                config={"recursion_limit": graph_recursion_limit(self.config)},
                stream_mode="values",
            ):
                snapshot = Thread(
                    id=thread.id,
                    messages=tuple(values["messages"]),
                    step_count=values["step_count"],
                )
                if snapshot != last:
                    await self.checkpoints.save(snapshot)
                    last = snapshot
        except GraphRecursionError as e:
            raise RecursionLimitExceeded(last.step_count, limit) from e
        except ThreadbotError as e:
            logger.error(f"Thread {thread.id} aborted ({e.code}): {e.message}")
            raise

        return last

    async def _prefetch(self, query: str) -> list[RetrievedDocument]:
        """Retrieve context for the user text. Failures only cost the context block."""
        if self.retriever is None or not self.config.rag.prefetch:
            return []
        try:
            return await self.retriever.search(query, k=self.config.rag.default_k)
        except ThreadbotError as e:
            logger.warning(f"Context prefetch failed: {e.message}")
            return []


def close_pending_tool_calls(thread: Thread) -> Thread:
    """Answer tool calls orphaned by an aborted invocation with error results."""
    pending = thread.pending_tool_calls()
    if not pending:
        return thread
    logger.warning(f"Thread {thread.id}: closing {len(pending)} interrupted tool call(s)")
    return thread.append(
        *(Message.tool(tc.id, INTERRUPTED_TOOL_RESULT, is_error=True) for tc in pending)
    )


def new_thread_id() -> str:
    return uuid.uuid4().hex


def create_runner(config: Config, checkpoints: CheckpointStore | None = None) -> AgentRunner:
    """Wire the production components described by ``config``.

    Raises
    ------
    ConfigurationError
        Missing credentials or unknown backends.
    """
    from threadbot.agent.tools import make_tools
    from threadbot.core.providers import make_chat_provider, make_embedding_provider
    from threadbot.memory.checkpoint import SQLiteCheckpointStore
    from threadbot.rag.vector_store import FaissVectorStore

    config.validate_runtime()
    if checkpoints is None:
        checkpoints = SQLiteCheckpointStore(
            str(config.db_path), timeout_s=config.database.timeout_s
        )
    retriever = Retriever(
        make_embedding_provider(config),
        FaissVectorStore(config.rag.index_path),
        default_k=config.rag.default_k,
    )
    return AgentRunner(
        config,
        checkpoints=checkpoints,
        chat=make_chat_provider(config),
        registry=make_tools(retriever),
        retriever=retriever,
    )
