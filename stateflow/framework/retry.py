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

"""Retry middleware for individual graph nodes.

The execution loop never retries on its own. Nodes that call flaky
collaborators (model APIs, tools) can be wrapped instead:

    graph.add_node(
        "call_model",
        call_model,
        retry_policy=RetryPolicy(max_attempts=3, initial_delay=0.5),
    )

Delay formula: min(max_delay, initial_delay * (backoff_factor ^ (attempt - 1)))
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass
from typing import Any, Optional

from stateflow.core.errors import ConfigurationError
from stateflow.framework.command import NodeInterrupt
from stateflow.framework.node import NodeProtocol, as_node

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff settings for one node.

    Attributes:
        max_attempts: Maximum number of attempts (including the first)
        initial_delay: Delay before the first retry, in seconds
        backoff_factor: Multiplier applied to the delay after each retry
        max_delay: Upper bound for any single delay
        retry_on: Exception types that trigger a retry
    """

    max_attempts: int = 3
    initial_delay: float = 0.5
    backoff_factor: float = 2.0
    max_delay: float = 30.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ConfigurationError("Retry delays must be non-negative")

    def get_delay(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        delay = self.initial_delay * (self.backoff_factor ** (attempt - 1))
        return max(0.0, min(delay, self.max_delay))

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        if attempt >= self.max_attempts:
            return False
        if isinstance(error, NodeInterrupt):
            return False
        return isinstance(error, self.retry_on)


class RetryNode:
    """Node wrapper that re-runs the inner node on failure."""

    def __init__(self, inner: Any, policy: Optional[RetryPolicy] = None) -> None:
        self.inner: NodeProtocol = as_node(inner)
        self.policy = policy or RetryPolicy()

    async def process(self, state: Any) -> Any:
        attempt = 0
        while True:
            attempt += 1
            attempt_state = copy.deepcopy(state)
            try:
                result = await self.inner.process(attempt_state)
                return attempt_state if result is None else result
            except Exception as e:
                if not self.policy.should_retry(e, attempt):
                    raise
                delay = self.policy.get_delay(attempt)
                logger.debug(
                    f"Retry attempt {attempt + 1}/{self.policy.max_attempts} "
                    f"in {delay:.2f}s after {type(e).__name__}: {e}"
                )
                if delay > 0:
                    await asyncio.sleep(delay)


__all__ = ["RetryPolicy", "RetryNode"]
