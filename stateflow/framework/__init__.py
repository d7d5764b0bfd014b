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

"""Graph workflow framework: builder, compiled engine, and collaborators.

Example:
    from stateflow.framework import StateGraph, END, MemoryCheckpointer

    graph = StateGraph()
    graph.add_node("plan", plan)
    graph.add_node("act", act)
    graph.add_edge("plan", "act")
    graph.add_edge("act", END)
    graph.set_entry_point("plan")

    app = graph.compile(checkpointer=MemoryCheckpointer())
    result = await app.invoke({"task": "..."}, thread_id="t1")
"""

from stateflow.framework.checkpoint import (
    Checkpoint,
    CheckpointerProtocol,
    MemoryCheckpointer,
)
from stateflow.framework.checkpointer import SQLiteCheckpointer
from stateflow.framework.command import (
    Command,
    CommandKind,
    Interrupt,
    NodeInterrupt,
    Send,
    interrupt,
)
from stateflow.framework.config import GraphConfig
from stateflow.framework.graph import (
    END,
    START,
    CompiledGraph,
    ConditionalEdge,
    Edge,
    EdgeType,
    ExecutionStatus,
    GraphResult,
    StateGraph,
    create_graph,
)
from stateflow.framework.node import FunctionNode, Node, NodeProtocol, as_node
from stateflow.framework.node_cache import CachePolicy, NodeCache
from stateflow.framework.retry import RetryNode, RetryPolicy
from stateflow.framework.state import (
    MessageState,
    StateProtocol,
    StateSerializer,
    merge_state,
)
from stateflow.framework.streaming import (
    StreamEvent,
    StreamEventKind,
    StreamMode,
    StreamWriter,
    get_stream_writer,
)

__all__ = [
    # Graph
    "StateGraph",
    "create_graph",
    "CompiledGraph",
    "Edge",
    "ConditionalEdge",
    "EdgeType",
    "GraphResult",
    "ExecutionStatus",
    "GraphConfig",
    "END",
    "START",
    # Nodes
    "NodeProtocol",
    "FunctionNode",
    "Node",
    "as_node",
    "RetryNode",
    "RetryPolicy",
    "CachePolicy",
    "NodeCache",
    # State
    "StateProtocol",
    "MessageState",
    "StateSerializer",
    "merge_state",
    # Commands
    "Command",
    "CommandKind",
    "Send",
    "Interrupt",
    "NodeInterrupt",
    "interrupt",
    # Checkpointing
    "Checkpoint",
    "CheckpointerProtocol",
    "MemoryCheckpointer",
    "SQLiteCheckpointer",
    # Streaming
    "StreamMode",
    "StreamEvent",
    "StreamEventKind",
    "StreamWriter",
    "get_stream_writer",
]
