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

"""Per-graph execution configuration.

For most use cases you don't need this module: ``StateGraph.compile()``
uses settings-derived defaults. GraphConfig is for graphs that need a
different step cap or cache capacity than the process-wide settings.

Example:
    config = GraphConfig(max_iterations=250)
    app = graph.compile(checkpointer=MemoryCheckpointer(), config=config)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from stateflow.config.settings import (
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_NODE_CACHE_MAX_ENTRIES,
    GraphSettings,
    load_settings,
)
from stateflow.core.errors import ConfigurationError


@dataclass
class GraphConfig:
    """Execution options for a compiled graph.

    Attributes:
        max_iterations: Node executions allowed per invoke/stream call
        node_cache_max_entries: Capacity of the compiled graph's node cache
    """

    max_iterations: int = DEFAULT_MAX_ITERATIONS
    node_cache_max_entries: int = DEFAULT_NODE_CACHE_MAX_ENTRIES

    def __post_init__(self) -> None:
        if self.max_iterations <= 0:
            raise ConfigurationError(
                f"max_iterations must be positive, got {self.max_iterations}"
            )
        if self.node_cache_max_entries <= 0:
            raise ConfigurationError(
                f"node_cache_max_entries must be positive, got {self.node_cache_max_entries}"
            )

    @classmethod
    def from_settings(cls, settings: Optional[GraphSettings] = None) -> "GraphConfig":
        """Create configuration from engine settings.

        Args:
            settings: Settings to read (loaded from the environment if None)
        """
        settings = settings or load_settings()
        return cls(
            max_iterations=settings.max_iterations,
            node_cache_max_entries=settings.node_cache_max_entries,
        )


__all__ = ["GraphConfig"]
