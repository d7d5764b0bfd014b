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

"""Per-node result cache for StateGraph workflows.

Memoizes node outputs keyed by ``(node name, SHA-256 of the serialized
input state)``, so a cache-enabled node that sees a state it has already
processed returns the stored output instead of running again.

Each entry carries its own expiry taken from the node's ``CachePolicy``.
A cache belongs to one compiled graph: it starts empty on every compile
and lives across repeated ``invoke`` calls on that instance.

Example:
    graph.add_node("embed", embed_documents, cache_policy=CachePolicy(ttl=300))
    app = graph.compile()

    await app.invoke(state)   # runs "embed"
    await app.invoke(state)   # served from cache

    print(app.node_cache.get_stats()["hit_rate"])
"""

from __future__ import annotations

import copy
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from cachetools import TLRUCache  # type: ignore[import-untyped]

from stateflow.config.settings import DEFAULT_NODE_CACHE_MAX_ENTRIES
from stateflow.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str]


@dataclass(frozen=True)
class CachePolicy:
    """Caching options for one node.

    Attributes:
        ttl: Seconds an entry stays valid (None = until evicted)
    """

    ttl: Optional[float] = None

    def __post_init__(self) -> None:
        if self.ttl is not None and self.ttl <= 0:
            raise ConfigurationError(f"Cache ttl must be positive, got {self.ttl}")


@dataclass
class NodeCacheEntry:
    """A cached node output.

    Attributes:
        output: The node output (state or command)
        ttl: Time-to-live copied from the node's policy
        created_at: Wall-clock time the entry was stored
        hit_count: Number of times this entry was served
    """

    output: Any
    ttl: Optional[float]
    created_at: float
    hit_count: int = 0


def _time_to_use(key: CacheKey, entry: NodeCacheEntry, now: float) -> float:
    if entry.ttl is None:
        return math.inf
    return now + entry.ttl


class NodeCache:
    """TTL-keyed memo table for node outputs.

    Thread-safe implementation using locks; safe to share between
    concurrent executions of the same compiled graph.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_NODE_CACHE_MAX_ENTRIES,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize node cache.

        Args:
            max_entries: Maximum number of cached outputs (LRU eviction)
            timer: Clock used for expiry (injectable for tests)
        """
        self._max_entries = max_entries
        self._lock = threading.RLock()
        self._cache: TLRUCache[CacheKey, NodeCacheEntry] = TLRUCache(
            maxsize=max_entries,
            ttu=_time_to_use,
            timer=timer,
        )
        self._stats: Dict[str, int] = {
            "hits": 0,
            "misses": 0,
            "stores": 0,
        }

    def get(self, node: str, fingerprint: str) -> Tuple[bool, Any]:
        """Look up a cached output.

        Args:
            node: Node name
            fingerprint: Fingerprint of the node's input state

        Returns:
            Tuple of (hit, output); output is a private copy
        """
        key = (node, fingerprint)
        with self._lock:
            entry: Optional[NodeCacheEntry] = self._cache.get(key)
            if entry is None:
                self._stats["misses"] += 1
                logger.debug(f"Node cache miss: {node} hash={fingerprint[:16]}...")
                return False, None
            entry.hit_count += 1
            self._stats["hits"] += 1
            output = entry.output
        logger.debug(f"Node cache hit: {node} hash={fingerprint[:16]}...")
        return True, copy.deepcopy(output)

    def put(
        self,
        node: str,
        fingerprint: str,
        output: Any,
        policy: CachePolicy,
    ) -> None:
        """Store a node output.

        Args:
            node: Node name
            fingerprint: Fingerprint of the node's input state
            output: Output produced by the node
            policy: The node's cache policy (supplies the ttl)
        """
        entry = NodeCacheEntry(
            output=copy.deepcopy(output),
            ttl=policy.ttl,
            created_at=time.time(),
        )
        with self._lock:
            self._cache[(node, fingerprint)] = entry
            self._stats["stores"] += 1

    def invalidate(self, node: str) -> int:
        """Drop every entry for a node.

        Returns:
            Number of entries removed
        """
        with self._lock:
            keys = [key for key in list(self._cache.keys()) if key[0] == node]
            for key in keys:
                self._cache.pop(key, None)
        if keys:
            logger.debug(f"Invalidated {len(keys)} cache entries for node: {node}")
        return len(keys)

    def clear(self) -> int:
        """Drop every entry.

        Returns:
            Number of entries cleared
        """
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
        return count

    def __len__(self) -> int:
        with self._lock:
            self._cache.expire()
            return len(self._cache)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dictionary with hits, misses, stores, hit_rate,
            current_size and max_size
        """
        with self._lock:
            stats: Dict[str, Any] = dict(self._stats)
            total = stats["hits"] + stats["misses"]
            stats["hit_rate"] = stats["hits"] / total if total > 0 else 0.0
            self._cache.expire()
            stats["current_size"] = len(self._cache)
            stats["max_size"] = self._max_entries
            return stats


__all__ = [
    "CachePolicy",
    "NodeCache",
    "NodeCacheEntry",
]
