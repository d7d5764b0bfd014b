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

"""Checkpoint record and the checkpoint store contract.

A checkpoint is a consistent point between two node executions: the
serialized state that existed after the last completed node, plus the
name of the node that should run next (None once the run reached END).
History per thread is append-only and listed oldest to newest.
"""

from __future__ import annotations

import builtins
import copy
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass
class Checkpoint:
    """Persisted snapshot of a thread.

    Attributes:
        state: Serialized (JSON-compatible) state
        next_node: Node to run on resume, None when the run finished
        checkpoint_id: Unique checkpoint identifier
        timestamp: When the checkpoint was created
        metadata: Engine bookkeeping (source node, pending fan-out, state
            type tag, interrupt_before pause marker)
    """

    state: Any
    next_node: Optional[str] = None
    checkpoint_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: float = field(default_factory=time.time)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize checkpoint to dictionary."""
        return {
            "checkpoint_id": self.checkpoint_id,
            "state": self.state,
            "next_node": self.next_node,
            "timestamp": self.timestamp,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Checkpoint":
        """Deserialize checkpoint from dictionary."""
        return cls(
            state=data["state"],
            next_node=data.get("next_node"),
            checkpoint_id=data["checkpoint_id"],
            timestamp=data["timestamp"],
            metadata=data.get("metadata") or {},
        )


@runtime_checkable
class CheckpointerProtocol(Protocol):
    """Protocol for checkpoint persistence, keyed by thread id.

    Implementations must be safe for concurrent use by several graph
    executions in the same process.
    """

    async def put(self, thread_id: str, checkpoint: Checkpoint) -> None:
        """Append a checkpoint to the thread's history."""
        ...

    async def get(self, thread_id: str) -> Optional[Checkpoint]:
        """Load the latest checkpoint for a thread."""
        ...

    async def list(self, thread_id: str) -> builtins.list[Checkpoint]:
        """List all checkpoints for a thread, oldest first."""
        ...


class MemoryCheckpointer:
    """In-memory checkpoint storage.

    Suitable for development and testing. Records are deep-copied on the
    way in and out so callers can never alias stored history.
    """

    def __init__(self) -> None:
        self._checkpoints: dict[str, builtins.list[Checkpoint]] = {}
        self._lock = threading.RLock()

    async def put(self, thread_id: str, checkpoint: Checkpoint) -> None:
        """Save checkpoint to memory."""
        stored = copy.deepcopy(checkpoint)
        with self._lock:
            self._checkpoints.setdefault(thread_id, []).append(stored)
        logger.debug(f"Saved checkpoint {checkpoint.checkpoint_id} (thread: {thread_id})")

    async def get(self, thread_id: str) -> Optional[Checkpoint]:
        """Load latest checkpoint."""
        with self._lock:
            checkpoints = self._checkpoints.get(thread_id)
            latest = checkpoints[-1] if checkpoints else None
        return copy.deepcopy(latest) if latest is not None else None

    async def list(self, thread_id: str) -> builtins.list[Checkpoint]:
        """List all checkpoints."""
        with self._lock:
            checkpoints = builtins.list(self._checkpoints.get(thread_id, []))
        return copy.deepcopy(checkpoints)

    def thread_ids(self) -> builtins.list[str]:
        """Threads that have at least one checkpoint."""
        with self._lock:
            return builtins.list(self._checkpoints)


__all__ = [
    "Checkpoint",
    "CheckpointerProtocol",
    "MemoryCheckpointer",
]
