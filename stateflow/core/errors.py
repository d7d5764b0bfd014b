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

"""Centralized error types for stateflow.

This module provides:
- Error categories and severities for classification
- A structured base exception with correlation IDs and recovery hints
- The graph error taxonomy: validation, execution, iteration limit,
  and non-resumable interrupts

Interrupts are not errors. A paused run is reported through
``GraphResult`` with ``ExecutionStatus.INTERRUPTED``; only true failures
raise one of the exceptions below.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


# =============================================================================
# Error Categories
# =============================================================================


class ErrorCategory(Enum):
    """Categories of errors for classification and handling."""

    GRAPH_VALIDATION = "graph_validation"
    NODE_EXECUTION = "node_execution"
    ITERATION_LIMIT = "iteration_limit"
    ROUTING = "routing"
    NOT_RESUMABLE = "not_resumable"
    CHECKPOINT = "checkpoint"
    STATE_SERIALIZATION = "state_serialization"
    CONFIG_INVALID = "config_invalid"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


# =============================================================================
# Custom Exception Types
# =============================================================================


class StateflowError(Exception):
    """Base exception for all stateflow errors.

    Provides structured error information including:
    - Error category and severity
    - Correlation ID for tracking
    - Recovery suggestions
    - Original exception chain
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        recovery_hint: Optional[str] = None,
        correlation_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.details = details or {}
        self.recovery_hint = recovery_hint
        self.correlation_id = correlation_id or str(uuid.uuid4())[:8]
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "correlation_id": self.correlation_id,
            "recovery_hint": self.recovery_hint,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        result = f"[{self.correlation_id}] {self.message}"
        if self.recovery_hint:
            result += f"\nRecovery hint: {self.recovery_hint}"
        return result


class GraphValidationError(StateflowError):
    """Graph definition failed compile-time checks.

    Never recoverable: the graph cannot be compiled until the definition
    is fixed. All problems found are collected in ``errors``.
    """

    def __init__(self, errors: List[str], **kwargs: Any):
        message = f"Invalid graph: {'; '.join(errors)}"
        kwargs.setdefault("category", ErrorCategory.GRAPH_VALIDATION)
        kwargs.setdefault(
            "recovery_hint",
            "Fix the graph definition (entry point, edge targets, path maps) and compile again.",
        )
        super().__init__(message, **kwargs)
        self.errors = list(errors)
        self.details["errors"] = self.errors


class GraphExecutionError(StateflowError):
    """Base class for failures raised while a compiled graph runs."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("category", ErrorCategory.NODE_EXECUTION)
        super().__init__(message, **kwargs)


class NodeExecutionError(GraphExecutionError):
    """A node's own operation failed.

    The original exception is chained (``raise ... from``) and kept on
    ``cause``; its message is carried verbatim.
    """

    def __init__(self, node: str, cause: BaseException, **kwargs: Any):
        super().__init__(f"Node '{node}' failed: {cause}", cause=cause, **kwargs)
        self.node = node
        self.details["node"] = node
        self.details["error_type"] = type(cause).__name__


class IterationLimitExceededError(GraphExecutionError):
    """The step cap was hit, usually a cycle with no path to END."""

    def __init__(
        self,
        limit: int,
        node_history: Optional[List[str]] = None,
        **kwargs: Any,
    ):
        super().__init__(
            f"Max iterations ({limit}) exceeded, possible infinite loop",
            category=ErrorCategory.ITERATION_LIMIT,
            severity=ErrorSeverity.CRITICAL,
            recovery_hint="Check conditional edges for a route to END.",
            **kwargs,
        )
        self.limit = limit
        self.node_history = list(node_history or [])
        self.details["limit"] = limit


class UnknownNodeError(GraphExecutionError):
    """A router or command named a node that is not in the graph."""

    def __init__(self, node: str, source: Optional[str] = None, **kwargs: Any):
        message = f"Node '{node}' not found"
        if source:
            message += f" (routed from '{source}')"
        super().__init__(message, category=ErrorCategory.ROUTING, **kwargs)
        self.node = node
        self.source = source
        self.details["node"] = node


class InterruptedNotResumableError(StateflowError):
    """A thread cannot be resumed or inspected.

    Raised when no checkpointer is attached, or when the thread has no
    saved checkpoint to resume from.
    """

    def __init__(self, reason: str, thread_id: Optional[str] = None, **kwargs: Any):
        message = reason if thread_id is None else f"{reason} (thread: {thread_id})"
        kwargs.setdefault("category", ErrorCategory.NOT_RESUMABLE)
        kwargs.setdefault(
            "recovery_hint",
            "Compile the graph with a checkpointer and run the thread before resuming it.",
        )
        super().__init__(message, **kwargs)
        self.thread_id = thread_id
        self.details["thread_id"] = thread_id


class CheckpointError(StateflowError):
    """A checkpoint store operation failed."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("category", ErrorCategory.CHECKPOINT)
        super().__init__(message, **kwargs)


class StateSerializationError(StateflowError):
    """State could not be converted to or from its serialized form."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("category", ErrorCategory.STATE_SERIALIZATION)
        super().__init__(message, **kwargs)


class ConfigurationError(StateflowError):
    """Invalid engine configuration."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("category", ErrorCategory.CONFIG_INVALID)
        super().__init__(message, **kwargs)


__all__ = [
    "ErrorCategory",
    "ErrorSeverity",
    "StateflowError",
    "GraphValidationError",
    "GraphExecutionError",
    "NodeExecutionError",
    "IterationLimitExceededError",
    "UnknownNodeError",
    "InterruptedNotResumableError",
    "CheckpointError",
    "StateSerializationError",
    "ConfigurationError",
]
