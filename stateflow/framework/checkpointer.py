# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Durable checkpointer for StateGraph persistence.

Stores the per-thread checkpoint history in a SQLite database so that
interrupted threads survive process restarts.

Example:
    from stateflow.framework.checkpointer import SQLiteCheckpointer
    from stateflow.framework.graph import StateGraph

    checkpointer = SQLiteCheckpointer("~/.stateflow/checkpoints.db")
    app = graph.compile(checkpointer=checkpointer)

    result = await app.invoke(initial_state, thread_id="my-thread")

    # Resume from the latest checkpoint
    result = await app.invoke(None, thread_id="my-thread")
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sqlite3
import threading
from pathlib import Path
from typing import Any, List, Optional

from stateflow.config.settings import load_settings
from stateflow.core.errors import CheckpointError
from stateflow.framework.checkpoint import Checkpoint

logger = logging.getLogger(__name__)


class SQLiteCheckpointer:
    """SQLite-based checkpointer for graph state persistence.

    History is ordered by an autoincrement sequence, so checkpoints written
    within the same clock tick keep their insertion order.

    Attributes:
        db_path: Path to SQLite database file
        table_name: Name of the checkpoints table
    """

    def __init__(
        self,
        db_path: Optional[str] = None,
        table_name: str = "checkpoints",
    ):
        """Initialize SQLite checkpointer.

        Args:
            db_path: Path to database file (will be created if not exists);
                defaults to the STATEFLOW_CHECKPOINT_DB_PATH setting
            table_name: Name for checkpoints table
        """
        if not table_name.isidentifier():
            raise CheckpointError(f"Invalid checkpoint table name: {table_name!r}")
        if db_path is None:
            db_path = load_settings().checkpoint_db_path
        self.db_path = Path(os.path.expanduser(db_path))
        self.table_name = table_name
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection. Caller holds the lock."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            # Calls arrive from executor threads; access is serialized by _lock.
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._init_schema(self._conn)
        return self._conn

    def _init_schema(self, conn: sqlite3.Connection) -> None:
        """Initialize database schema."""
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.table_name} (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                checkpoint_id TEXT NOT NULL UNIQUE,
                thread_id TEXT NOT NULL,
                next_node TEXT,
                state TEXT NOT NULL,
                timestamp REAL NOT NULL,
                metadata TEXT
            )
        """)
        conn.execute(f"""
            CREATE INDEX IF NOT EXISTS idx_{self.table_name}_thread_seq
            ON {self.table_name}(thread_id, seq)
        """)
        conn.commit()
        logger.debug(f"Initialized checkpoint schema: {self.db_path}")

    async def _run(self, func: Any, *args: Any) -> Any:
        """Run a blocking database call in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def put(self, thread_id: str, checkpoint: Checkpoint) -> None:
        """Append a checkpoint to the thread's history."""
        await self._run(self._put_sync, thread_id, checkpoint)

    def _put_sync(self, thread_id: str, checkpoint: Checkpoint) -> None:
        try:
            state_json = json.dumps(checkpoint.state)
            metadata_json = json.dumps(checkpoint.metadata)
        except (TypeError, ValueError) as e:
            raise CheckpointError(f"Checkpoint is not JSON serializable: {e}", cause=e) from e

        with self._lock:
            conn = self._get_connection()
            try:
                conn.execute(
                    f"""
                    INSERT INTO {self.table_name}
                    (checkpoint_id, thread_id, next_node, state, timestamp, metadata)
                    VALUES (?, ?, ?, ?, ?, ?)
                """,
                    (
                        checkpoint.checkpoint_id,
                        thread_id,
                        checkpoint.next_node,
                        state_json,
                        checkpoint.timestamp,
                        metadata_json,
                    ),
                )
                conn.commit()
            except sqlite3.Error as e:
                raise CheckpointError(f"Failed to save checkpoint: {e}", cause=e) from e
        logger.debug(
            f"Saved checkpoint: {checkpoint.checkpoint_id} "
            f"(thread: {thread_id}, next: {checkpoint.next_node})"
        )

    async def get(self, thread_id: str) -> Optional[Checkpoint]:
        """Load the latest checkpoint for a thread."""
        return await self._run(self._get_sync, thread_id)

    def _get_sync(self, thread_id: str) -> Optional[Checkpoint]:
        with self._lock:
            row = self._get_connection().execute(
                f"""
                SELECT * FROM {self.table_name}
                WHERE thread_id = ?
                ORDER BY seq DESC
                LIMIT 1
            """,
                (thread_id,),
            ).fetchone()
        return self._row_to_checkpoint(row) if row is not None else None

    async def list(self, thread_id: str) -> List[Checkpoint]:
        """List all checkpoints for a thread, oldest first."""
        return await self._run(self._list_sync, thread_id)

    def _list_sync(self, thread_id: str) -> List[Checkpoint]:
        with self._lock:
            rows = self._get_connection().execute(
                f"""
                SELECT * FROM {self.table_name}
                WHERE thread_id = ?
                ORDER BY seq ASC
            """,
                (thread_id,),
            ).fetchall()
        return [self._row_to_checkpoint(row) for row in rows]

    async def delete_thread(self, thread_id: str) -> int:
        """Delete all checkpoints for a thread.

        Returns:
            Number of checkpoints deleted
        """
        return await self._run(self._delete_thread_sync, thread_id)

    def _delete_thread_sync(self, thread_id: str) -> int:
        with self._lock:
            conn = self._get_connection()
            cursor = conn.execute(
                f"DELETE FROM {self.table_name} WHERE thread_id = ?",
                (thread_id,),
            )
            conn.commit()
        return cursor.rowcount

    @staticmethod
    def _row_to_checkpoint(row: sqlite3.Row) -> Checkpoint:
        return Checkpoint(
            state=json.loads(row["state"]),
            next_node=row["next_node"],
            checkpoint_id=row["checkpoint_id"],
            timestamp=row["timestamp"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        )

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None


__all__ = ["SQLiteCheckpointer"]
