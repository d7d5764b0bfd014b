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

"""Node contract and the registered node record.

Anything with ``async def process(state)`` is a node. Plain functions,
sync or async, are wrapped in ``FunctionNode``; they are one more
implementer of the contract, not a special case.

A node returns one of:
    - a new state (replaces the running state)
    - None (the node's owned copy of the state, possibly mutated, is kept)
    - a ``Command`` (routing override, optionally with a delta)
    - an ``Interrupt`` (pause the run)
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from stateflow.framework.node_cache import CachePolicy


@runtime_checkable
class NodeProtocol(Protocol):
    """Protocol for graph nodes."""

    async def process(self, state: Any) -> Any: ...


class FunctionNode:
    """Wraps a sync or async callable ``state -> output`` as a node."""

    def __init__(self, func: Callable[[Any], Any]) -> None:
        self.func = func
        self.__name__ = getattr(func, "__name__", type(func).__name__)

    async def process(self, state: Any) -> Any:
        result = self.func(state)
        if inspect.isawaitable(result):
            return await result
        return result

    def __repr__(self) -> str:
        return f"FunctionNode({self.__name__})"


def as_node(obj: Any) -> NodeProtocol:
    """Coerce a node implementation or callable into a ``NodeProtocol``.

    Raises:
        TypeError: If ``obj`` is neither a node nor callable
    """
    if isinstance(obj, NodeProtocol):
        return obj
    if callable(obj):
        return FunctionNode(obj)
    raise TypeError(f"Node must implement process(state) or be callable, got {type(obj).__name__}")


@dataclass
class Node:
    """Represents a node in the graph.

    Attributes:
        name: Unique node name
        impl: Node implementation
        cache_policy: Enables the node cache for this node when set
        deferred: Marks an intended fan-in point (informational only)
        metadata: Additional node metadata
    """

    name: str
    impl: NodeProtocol
    cache_policy: Optional[CachePolicy] = None
    deferred: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    async def execute(self, state: Any) -> Any:
        """Run the node implementation on ``state``."""
        return await self.impl.process(state)


__all__ = [
    "NodeProtocol",
    "FunctionNode",
    "Node",
    "as_node",
]
