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

"""Shared pytest fixtures and configuration."""

from dataclasses import dataclass, field
from typing import Any, Dict, List

import pytest

from stateflow.framework.checkpoint import MemoryCheckpointer


@dataclass
class CallLog:
    """Records node executions so tests can assert on side effects."""

    calls: List[str] = field(default_factory=list)

    def record(self, name: str) -> None:
        self.calls.append(name)

    def count(self, name: str) -> int:
        return self.calls.count(name)


@pytest.fixture(autouse=True)
def isolate_environment_variables(monkeypatch):
    """Isolate tests from STATEFLOW_* environment variables and .env files."""
    monkeypatch.setenv("STATEFLOW_SKIP_ENV_FILE", "1")
    for var in (
        "STATEFLOW_MAX_ITERATIONS",
        "STATEFLOW_NODE_CACHE_MAX_ENTRIES",
        "STATEFLOW_CHECKPOINT_DB_PATH",
        "STATEFLOW_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def checkpointer() -> MemoryCheckpointer:
    """Fresh in-memory checkpointer."""
    return MemoryCheckpointer()


@pytest.fixture
def call_log() -> CallLog:
    """Fresh execution log."""
    return CallLog()


@pytest.fixture
def initial_state() -> Dict[str, Any]:
    """Dict state used by most engine tests."""
    return {"counter": 0, "visited": []}
