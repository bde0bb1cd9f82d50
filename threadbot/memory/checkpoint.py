"""Checkpoint stores — durable Thread snapshots keyed by thread id.

One row per thread: the full ordered message list as JSON. Callers
serialize writers per thread id (see ``threadbot.agent.runner.ThreadLocks``).
Threads only grow, so the SQLite upsert never replaces a row with a
snapshot holding fewer messages. A save abandoned on timeout can still
land in the worker thread after a newer save and must not roll it back.
"""

from __future__ import annotations

import abc
import asyncio
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, TypeVar

from loguru import logger

from threadbot.core.errors import CheckpointError
from threadbot.memory.models import Thread

T = TypeVar("T")


class CheckpointStore(abc.ABC):
    """Load/save contract for conversation state."""

    @abc.abstractmethod
    async def load(self, thread_id: str) -> Thread | None:
        """Return the stored Thread, or None when the id is unknown."""

    @abc.abstractmethod
    async def save(self, thread: Thread) -> None:
        """Persist ``thread``. Idempotent. A snapshot with fewer messages
        than the stored one is ignored."""

    @abc.abstractmethod
    async def delete(self, thread_id: str) -> bool:
        """Remove a thread. Never called by the agent loop."""

    @abc.abstractmethod
    async def list_threads(self, limit: int = 50) -> list[dict[str, Any]]:
        """Most recently updated threads: ``[{thread_id, message_count, updated_at}]``."""


class InMemoryCheckpointStore(CheckpointStore):
    """Process-local store. Holds serialized copies so callers cannot mutate it."""

    def __init__(self) -> None:
        self._rows: dict[str, str] = {}
        self._counts: dict[str, int] = {}
        self._order: list[str] = []

    async def load(self, thread_id: str) -> Thread | None:
        raw = self._rows.get(thread_id)
        return Thread.model_validate_json(raw) if raw is not None else None

    async def save(self, thread: Thread) -> None:
        if len(thread.messages) < self._counts.get(thread.id, 0):
            return
        self._rows[thread.id] = thread.model_dump_json()
        self._counts[thread.id] = len(thread.messages)
        if thread.id in self._order:
            self._order.remove(thread.id)
        self._order.append(thread.id)

    async def delete(self, thread_id: str) -> bool:
        if thread_id not in self._rows:
            return False
        del self._rows[thread_id]
        del self._counts[thread_id]
        self._order.remove(thread_id)
        return True

    async def list_threads(self, limit: int = 50) -> list[dict[str, Any]]:
        result = []
        for thread_id in reversed(self._order[-limit:]):
            thread = Thread.model_validate_json(self._rows[thread_id])
            result.append({
                "thread_id": thread_id,
                "message_count": len(thread.messages),
                "updated_at": None,
            })
        return result


class SQLiteCheckpointStore(CheckpointStore):
    """SQLite-backed checkpoints. Blocking sqlite calls run in a worker thread."""

    def __init__(self, db_path: str = "data/threadbot.db", timeout_s: float = 10.0):
        self.db_path = db_path
        self.timeout_s = timeout_s
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        logger.info(f"CheckpointStore initialized: {db_path}")

    @contextmanager
    def _get_conn(self):
        conn = sqlite3.connect(self.db_path, timeout=self.timeout_s)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._get_conn() as conn:
            conn.executescript(_SCHEMA)
            conn.commit()

    async def _run(self, op: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args), timeout=self.timeout_s
            )
        except asyncio.TimeoutError as e:
            raise CheckpointError(f"Checkpoint {op} timed out after {self.timeout_s}s") from e
        except sqlite3.Error as e:
            raise CheckpointError(f"Checkpoint {op} failed: {e}") from e

    # ════════════════════════════════════════════════════════════
    # CONTRACT
    # ════════════════════════════════════════════════════════════

    async def load(self, thread_id: str) -> Thread | None:
        row = await self._run("load", self._load_row, thread_id)
        if row is None:
            return None
        return Thread.model_validate_json(row)

    async def save(self, thread: Thread) -> None:
        payload = thread.model_dump_json()
        await self._run("save", self._upsert_row, thread.id, payload, len(thread.messages))
        logger.debug(f"Checkpoint saved: thread={thread.id} messages={len(thread.messages)}")

    async def delete(self, thread_id: str) -> bool:
        return await self._run("delete", self._delete_row, thread_id)

    async def list_threads(self, limit: int = 50) -> list[dict[str, Any]]:
        return await self._run("list", self._list_rows, limit)

    # ════════════════════════════════════════════════════════════
    # SQL (worker thread)
    # ════════════════════════════════════════════════════════════

    def _load_row(self, thread_id: str) -> str | None:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT state FROM threads WHERE thread_id = ?", (thread_id,)
            ).fetchone()
        return row["state"] if row else None

    def _upsert_row(self, thread_id: str, payload: str, message_count: int) -> None:
        with self._get_conn() as conn:
            conn.execute(
                """INSERT INTO threads (thread_id, state, message_count)
                   VALUES (?, ?, ?)
                   ON CONFLICT(thread_id) DO UPDATE SET
                       state = excluded.state,
                       message_count = excluded.message_count,
                       updated_at = CURRENT_TIMESTAMP
                   WHERE excluded.message_count >= threads.message_count""",
                (thread_id, payload, message_count),
            )
            conn.commit()

    def _delete_row(self, thread_id: str) -> bool:
        with self._get_conn() as conn:
            cur = conn.execute("DELETE FROM threads WHERE thread_id = ?", (thread_id,))
            conn.commit()
            return cur.rowcount > 0

    def _list_rows(self, limit: int) -> list[dict[str, Any]]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT thread_id, message_count, updated_at FROM threads "
                "ORDER BY updated_at DESC, rowid DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [dict(r) for r in rows]


_SCHEMA = """
CREATE TABLE IF NOT EXISTS threads (
    thread_id TEXT PRIMARY KEY,
    state TEXT NOT NULL,
    message_count INTEGER DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_threads_updated ON threads(updated_at DESC);
"""
