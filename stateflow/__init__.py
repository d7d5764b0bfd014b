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

"""
Stateflow - a graph execution engine for stateful, cyclic workflows.

Nodes transform a shared state; fixed and conditional edges (or
commands returned by nodes) pick the next node; checkpoints make every
thread pausable, inspectable and resumable.

Simple API:
    from stateflow import StateGraph, END

    graph = StateGraph()
    graph.add_node("greet", lambda s: {**s, "greeting": f"hello {s['name']}"})
    graph.add_edge("greet", END)
    graph.set_entry_point("greet")

    result = await graph.compile().invoke({"name": "ada"})
    print(result.state["greeting"])

Human-in-the-loop:
    graph.interrupt_before(["tools"])
    app = graph.compile(checkpointer=MemoryCheckpointer())

    result = await app.invoke(initial, thread_id="t1")     # pauses before "tools"
    await app.update_state("t1", {"approved": True})
    result = await app.invoke(None, thread_id="t1")        # continues at "tools"
"""

from stateflow.core.errors import (
    GraphExecutionError,
    GraphValidationError,
    InterruptedNotResumableError,
    IterationLimitExceededError,
    NodeExecutionError,
    StateflowError,
    UnknownNodeError,
)
from stateflow.core.logging import configure_logging
from stateflow.framework import (
    END,
    START,
    CachePolicy,
    Command,
    CompiledGraph,
    ExecutionStatus,
    GraphConfig,
    GraphResult,
    MemoryCheckpointer,
    MessageState,
    RetryPolicy,
    Send,
    SQLiteCheckpointer,
    StateGraph,
    StreamEvent,
    StreamEventKind,
    StreamMode,
    get_stream_writer,
    interrupt,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "StateGraph",
    "CompiledGraph",
    "GraphResult",
    "ExecutionStatus",
    "GraphConfig",
    "END",
    "START",
    "Command",
    "Send",
    "interrupt",
    "CachePolicy",
    "RetryPolicy",
    "MessageState",
    "MemoryCheckpointer",
    "SQLiteCheckpointer",
    "StreamMode",
    "StreamEvent",
    "StreamEventKind",
    "get_stream_writer",
    "configure_logging",
    "StateflowError",
    "GraphValidationError",
    "GraphExecutionError",
    "NodeExecutionError",
    "IterationLimitExceededError",
    "UnknownNodeError",
    "InterruptedNotResumableError",
]
