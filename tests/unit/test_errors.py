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

"""Tests for the structured error hierarchy."""

import pytest

from stateflow.core.errors import (
    ErrorCategory,
    ErrorSeverity,
    GraphExecutionError,
    GraphValidationError,
    InterruptedNotResumableError,
    IterationLimitExceededError,
    NodeExecutionError,
    StateflowError,
    UnknownNodeError,
)


class TestStateflowError:
    """Tests for the base error."""

    def test_defaults(self):
        error = StateflowError("something broke")
        assert error.category == ErrorCategory.UNKNOWN
        assert error.severity == ErrorSeverity.ERROR
        assert len(error.correlation_id) == 8
        assert str(error) == f"[{error.correlation_id}] something broke"

    def test_recovery_hint_in_str(self):
        error = StateflowError("oops", recovery_hint="try again")
        assert str(error).endswith("Recovery hint: try again")

    def test_to_dict(self):
        error = StateflowError("oops", details={"k": "v"}, correlation_id="abc12345")
        data = error.to_dict()
        assert data["error"] == "oops"
        assert data["category"] == "unknown"
        assert data["correlation_id"] == "abc12345"
        assert data["details"] == {"k": "v"}
        assert "timestamp" in data


class TestGraphErrors:
    """Tests for graph error subclasses."""

    def test_validation_error_collects_messages(self):
        error = GraphValidationError(["No entry point set", "Edge target 'x' not found"])
        assert error.errors == ["No entry point set", "Edge target 'x' not found"]
        assert "No entry point set; Edge target 'x' not found" in error.message
        assert error.category == ErrorCategory.GRAPH_VALIDATION

    def test_node_execution_error(self):
        cause = TimeoutError("provider timed out")
        error = NodeExecutionError("agent", cause)
        assert isinstance(error, GraphExecutionError)
        assert error.node == "agent"
        assert error.cause is cause
        assert error.message == "Node 'agent' failed: provider timed out"
        assert error.details["error_type"] == "TimeoutError"

    def test_iteration_limit_error(self):
        error = IterationLimitExceededError(100, ["a", "b"])
        assert error.limit == 100
        assert error.node_history == ["a", "b"]
        assert error.severity == ErrorSeverity.CRITICAL
        assert error.category == ErrorCategory.ITERATION_LIMIT

    def test_unknown_node_error(self):
        error = UnknownNodeError("ghost", source="router")
        assert error.message == "Node 'ghost' not found (routed from 'router')"
        assert error.category == ErrorCategory.ROUTING

    def test_not_resumable_error(self):
        error = InterruptedNotResumableError("No checkpoint found", "t1")
        assert error.thread_id == "t1"
        assert error.message == "No checkpoint found (thread: t1)"
        assert not isinstance(error, GraphExecutionError)

    @pytest.mark.parametrize(
        "error",
        [
            GraphValidationError(["x"]),
            NodeExecutionError("n", ValueError("v")),
            IterationLimitExceededError(1),
            UnknownNodeError("n"),
            InterruptedNotResumableError("r"),
        ],
    )
    def test_all_share_base(self, error):
        assert isinstance(error, StateflowError)
