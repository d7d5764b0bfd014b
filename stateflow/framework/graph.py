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

"""StateGraph - graph workflow engine.

This module provides the StateGraph builder and the CompiledGraph
execution engine for cyclic, stateful workflows with checkpointing,
human-in-the-loop interrupts, streaming, and per-node caching.

Design Principles (SOLID):
    - Single Responsibility: Each helper handles one aspect (iterations,
      interrupts, node execution, checkpoints)
    - Open/Closed: Extensible via protocols without modifying core classes
    - Liskov Substitution: All node types implement NodeProtocol
    - Dependency Inversion: Checkpointer and node cache are injected into
      the compiled graph, never process-wide singletons

Execution model:
    The compiled graph is an explicit state machine. Each call starts at
    Ready(entry point), or at Ready(next node) when a thread checkpoint
    exists, and runs strictly node by node until it reaches Complete
    (the END sentinel) or Interrupted. Interrupts are a successful,
    resumable outcome reported through GraphResult, not exceptions.

Example:
    from stateflow.framework.graph import StateGraph, END
    from stateflow.framework.checkpoint import MemoryCheckpointer

    graph = StateGraph()
    graph.add_node("agent", call_model)
    graph.add_node("tools", run_tools)
    graph.add_edge("tools", "agent")
    graph.add_conditional_edge(
        "agent",
        lambda s: "tools" if s["pending_tool_calls"] else END,
        {"tools": "tools", END: END},
    )
    graph.set_entry_point("agent")
    graph.interrupt_before(["tools"])

    app = graph.compile(checkpointer=MemoryCheckpointer())
    result = await app.invoke({"messages": [], "pending_tool_calls": []}, thread_id="t1")
    if result.is_interrupted:
        result = await app.invoke(None, thread_id="t1")
"""

from __future__ import annotations

import copy
import logging
import time
import uuid
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar, Union

from stateflow.core.errors import (
    GraphExecutionError,
    GraphValidationError,
    InterruptedNotResumableError,
    IterationLimitExceededError,
    NodeExecutionError,
    UnknownNodeError,
)
from stateflow.framework.checkpoint import Checkpoint, CheckpointerProtocol
from stateflow.framework.command import (
    Command,
    CommandKind,
    Interrupt,
    NodeInterrupt,
    Send,
    _resume_slot,
    _ResumeSlot,
)
from stateflow.framework.config import GraphConfig
from stateflow.framework.node import Node, as_node
from stateflow.framework.node_cache import CachePolicy, NodeCache
from stateflow.framework.retry import RetryNode, RetryPolicy
from stateflow.framework.state import StateSerializer, merge_state
from stateflow.framework.streaming import (
    StreamEvent,
    StreamEventKind,
    StreamMode,
    StreamWriter,
    _stream_writer,
)

logger = logging.getLogger(__name__)

StateType = TypeVar("StateType")

# Sentinels for the start and end of a graph
END = "__end__"
START = "__start__"

# Checkpoint metadata keys
STATE_TYPE_KEY = "state_type"
PAUSED_BEFORE_KEY = "paused_before"

Router = Callable[[Any], str]


class EdgeType(Enum):
    """Types of edges in the graph."""

    NORMAL = "normal"
    CONDITIONAL = "conditional"


class ExecutionStatus(Enum):
    """Terminal outcome of one invoke/stream call."""

    COMPLETE = "complete"
    INTERRUPTED = "interrupted"


@dataclass
class Edge:
    """Fixed edge between two nodes.

    Attributes:
        source: Source node name
        target: Target node name (or END)
    """

    source: str
    target: str
    edge_type: EdgeType = EdgeType.NORMAL


@dataclass
class ConditionalEdge:
    """Edge whose target is chosen by a router at run time.

    Attributes:
        source: Source node name
        router: Function mapping state to a target name or path-map label
        path_map: Optional label -> target mapping, enumerating the
            possible targets for static analysis
    """

    source: str
    router: Router
    path_map: Optional[dict[str, str]] = None
    edge_type: EdgeType = EdgeType.CONDITIONAL

    def resolve(self, state: Any) -> str:
        """Run the router and translate its result through the path map."""
        result = self.router(state)
        if self.path_map and result in self.path_map:
            return self.path_map[result]
        return result

    def possible_targets(self) -> list[str]:
        return list(self.path_map.values()) if self.path_map else []


@dataclass
class GraphResult(Generic[StateType]):
    """Tagged result from graph execution.

    Attributes:
        status: COMPLETE or INTERRUPTED
        state: Final state (for interrupts: state after the last completed node)
        thread_id: Thread the run was recorded under
        next_node: Node that runs on resume (None when complete)
        interrupt: Payload passed to interrupt() by a node, if any
        node_history: Nodes executed during this call, in order
        iterations: Number of node executions during this call
        duration: Total execution time in seconds
    """

    status: ExecutionStatus
    state: StateType
    thread_id: str
    next_node: Optional[str] = None
    interrupt: Any = None
    node_history: list[str] = field(default_factory=list)
    iterations: int = 0
    duration: float = 0.0

    @property
    def is_complete(self) -> bool:
        return self.status == ExecutionStatus.COMPLETE

    @property
    def is_interrupted(self) -> bool:
        return self.status == ExecutionStatus.INTERRUPTED


@dataclass
class _StepRecord:
    """One node execution, as seen by stream consumers."""

    node: str
    before: Any
    after: Any
    custom: list[Any]
    completed: bool = True
    cached: bool = False


@dataclass
class _RunStart:
    """Where a run begins: fresh input or a reloaded checkpoint."""

    state: Any
    node: str
    pending: list[Send]
    # The checkpoint recorded an interrupt_before pause on ``node``
    paused_before: bool
    resume: Optional[_ResumeSlot]
    needs_save: bool


# =============================================================================
# Graph Execution Helpers (SRP Compliance)
# =============================================================================


class IterationController:
    """Enforces the per-call cap on node executions.

    Guards against cycles with no route to END.
    """

    def __init__(self, max_iterations: int):
        self.max_iterations = max_iterations
        self.iterations = 0

    def check(self, current_node: str, node_history: list[str]) -> None:
        """Count one node execution, raising once the cap is reached.

        Raises:
            IterationLimitExceededError: When max_iterations executions
                already happened in this call
        """
        if self.iterations >= self.max_iterations:
            logger.warning(
                f"Iteration limit reached before node '{current_node}': "
                f"{self.max_iterations} executions"
            )
            raise IterationLimitExceededError(self.max_iterations, node_history)
        self.iterations += 1


class InterruptHandler:
    """Handles graph interrupts for human-in-the-loop workflows (SRP)."""

    def __init__(self, interrupt_before: Iterable[str], interrupt_after: Iterable[str]):
        self.interrupt_before = frozenset(interrupt_before)
        self.interrupt_after = frozenset(interrupt_after)

    def should_interrupt_before(self, node_id: str) -> bool:
        return node_id in self.interrupt_before

    def should_interrupt_after(self, node_id: str) -> bool:
        return node_id in self.interrupt_after


class NodeExecutor:
    """Executes individual graph nodes (SRP: Single Responsibility).

    Handles cache lookup, owned-copy isolation, resume values, custom
    stream writers, and error wrapping.
    """

    def __init__(self, cache: Optional[NodeCache], serializer: StateSerializer):
        self.cache = cache
        self.serializer = serializer

    async def execute(
        self,
        node: Node,
        state: Any,
        resume: Optional[_ResumeSlot] = None,
        writer: Optional[StreamWriter] = None,
    ) -> tuple[Any, bool]:
        """Execute a node.

        Args:
            node: Node to execute
            state: Input state (never mutated)
            resume: Resume value for interrupt() calls in this step
            writer: Sink for custom stream events

        Returns:
            Tuple of (normalized output, served_from_cache)

        Raises:
            NodeExecutionError: If the node raised
        """
        fingerprint: Optional[str] = None
        if node.cache_policy is not None and self.cache is not None:
            fingerprint = self.serializer.fingerprint(state)
            hit, cached = self.cache.get(node.name, fingerprint)
            if hit:
                return cached, True

        owned = copy.deepcopy(state)
        resume_token = _resume_slot.set(resume)
        writer_token = _stream_writer.set(writer)
        try:
            output = await node.execute(owned)
        except NodeInterrupt as e:
            output = Interrupt(e.value)
        except Exception as e:
            logger.error(f"Node '{node.name}' failed: {e}", exc_info=True)
            raise NodeExecutionError(node.name, e) from e
        finally:
            _resume_slot.reset(resume_token)
            _stream_writer.reset(writer_token)

        if output is None:
            output = owned

        # Interrupts are never cached; failures raised above.
        if fingerprint is not None and self.cache is not None and node.cache_policy is not None:
            if not isinstance(output, Interrupt):
                self.cache.put(node.name, fingerprint, output, node.cache_policy)

        return output, False


class GraphCheckpointManager:
    """Manages state checkpointing for graph workflows (SRP).

    Handles loading the starting point of a run and persisting
    checkpoints between node executions.
    """

    def __init__(
        self,
        checkpointer: Optional[CheckpointerProtocol],
        serializer: StateSerializer,
    ):
        self.checkpointer = checkpointer
        self.serializer = serializer

    def require_checkpointer(self, thread_id: Optional[str] = None) -> CheckpointerProtocol:
        if self.checkpointer is None:
            raise InterruptedNotResumableError("No checkpointer configured", thread_id)
        return self.checkpointer

    async def load_initial_state(
        self,
        thread_id: str,
        input_state: Any,
        entry_point: str,
    ) -> _RunStart:
        """Load the starting point from a checkpoint or the input state.

        Args:
            thread_id: Thread ID for checkpoint lookup
            input_state: Initial state, a delta for a checkpointed thread,
                None, or Command.resume(value)
            entry_point: Default entry point if no checkpoint exists
        """
        resume_command = isinstance(input_state, Command) and input_state.kind == CommandKind.RESUME
        if isinstance(input_state, Command) and not resume_command:
            raise TypeError("Only Command.resume(...) can be passed as graph input")

        checkpoint: Optional[Checkpoint] = None
        if self.checkpointer is not None:
            checkpoint = await self.checkpointer.get(thread_id)

        if checkpoint is None:
            if resume_command or input_state is None:
                reason = (
                    "No checkpointer configured"
                    if self.checkpointer is None
                    else "No checkpoint found to resume from"
                )
                raise InterruptedNotResumableError(reason, thread_id)
            return _RunStart(
                state=copy.deepcopy(input_state),
                node=entry_point,
                pending=[],
                paused_before=False,
                resume=None,
                needs_save=True,
            )

        state = self.load_state(checkpoint)
        pending = [
            Send(
                node=item["node"],
                payload=self._load_payload(item.get("payload"), item.get("payload_type")),
            )
            for item in checkpoint.metadata.get("pending_sends", [])
        ]
        needs_save = False
        resume: Optional[_ResumeSlot] = None

        if resume_command:
            resume = _ResumeSlot(input_state.resume_value, pending=True)
        elif input_state is not None:
            before = self.serializer.fingerprint(state)
            state = merge_state(state, input_state)
            needs_save = self.serializer.fingerprint(state) != before

        if checkpoint.next_node is None:
            # Finished thread: start a new pass from the entry point.
            logger.info(f"Thread {thread_id} finished earlier, restarting at: {entry_point}")
            return _RunStart(
                state=state,
                node=entry_point,
                pending=[],
                paused_before=False,
                resume=resume,
                needs_save=True,
            )

        logger.info(f"Resuming thread {thread_id} at node: {checkpoint.next_node}")
        return _RunStart(
            state=state,
            node=checkpoint.next_node,
            pending=pending,
            paused_before=checkpoint.metadata.get(PAUSED_BEFORE_KEY) == checkpoint.next_node,
            resume=resume,
            needs_save=needs_save,
        )

    async def save_checkpoint(
        self,
        thread_id: str,
        state: Any,
        next_node: Optional[str],
        pending: list[Send],
        source: Optional[str] = None,
        paused_before: bool = False,
    ) -> None:
        """Persist a checkpoint if a checkpointer is attached.

        Args:
            thread_id: Thread ID for checkpoint
            state: State after the last completed node
            next_node: Node to run on resume (None when finished)
            pending: Remaining fan-out targets
            source: Node (or operation) that produced this checkpoint
            paused_before: The run pauses before next_node, so the next
                resume runs it without pausing again
        """
        if self.checkpointer is None:
            return

        metadata: dict[str, Any] = {}
        if source is not None:
            metadata["source"] = source
        if paused_before and next_node is not None:
            metadata[PAUSED_BEFORE_KEY] = next_node
        if pending:
            metadata["pending_sends"] = [self._dump_send(send) for send in pending]

        await self.checkpointer.put(thread_id, self.build_checkpoint(state, next_node, metadata))
        logger.debug(f"Checkpoint saved for thread {thread_id} (next: {next_node})")

    def build_checkpoint(
        self,
        state: Any,
        next_node: Optional[str],
        metadata: dict[str, Any],
    ) -> Checkpoint:
        """Serialize a state into a checkpoint, tagging its type when needed."""
        metadata = dict(metadata)
        type_tag = self.serializer.type_tag(state)
        if type_tag is not None:
            metadata[STATE_TYPE_KEY] = type_tag
        else:
            metadata.pop(STATE_TYPE_KEY, None)
        return Checkpoint(
            state=self.serializer.dump(state),
            next_node=next_node,
            metadata=metadata,
        )

    def load_state(self, checkpoint: Checkpoint) -> Any:
        return self.serializer.load(checkpoint.state, checkpoint.metadata.get(STATE_TYPE_KEY))

    def _dump_send(self, send: Send) -> dict[str, Any]:
        item: dict[str, Any] = {"node": send.node, "payload": None}
        if send.payload is not None:
            item["payload"] = self.serializer.dump(send.payload)
            type_tag = self.serializer.type_tag(send.payload)
            if type_tag is not None:
                item["payload_type"] = type_tag
        return item

    def _load_payload(self, payload: Any, type_tag: Optional[str] = None) -> Any:
        return None if payload is None else self.serializer.load(payload, type_tag)


# =============================================================================
# Compiled Graph
# =============================================================================


class CompiledGraph(Generic[StateType]):
    """Compiled graph ready for execution.

    Immutable execution plan produced by ``StateGraph.compile()``. The
    checkpointer and node cache are injected here and shared by every
    call on this instance; both are safe for concurrent use.
    """

    def __init__(
        self,
        nodes: dict[str, Node],
        edges: list[Edge],
        conditional_edges: list[ConditionalEdge],
        entry_point: str,
        interrupt_before: Iterable[str] = (),
        interrupt_after: Iterable[str] = (),
        checkpointer: Optional[CheckpointerProtocol] = None,
        node_cache: Optional[NodeCache] = None,
        serializer: Optional[StateSerializer] = None,
        config: Optional[GraphConfig] = None,
    ):
        """Initialize compiled graph.

        Args:
            nodes: Node registry
            edges: Fixed edges
            conditional_edges: Conditional edges
            entry_point: Starting node name
            interrupt_before: Nodes to pause before
            interrupt_after: Nodes to pause after
            checkpointer: Checkpoint store (None = no persistence)
            node_cache: Node result cache (a fresh one if None)
            serializer: State serializer
            config: Execution configuration
        """
        self._nodes = dict(nodes)
        self._edges = list(edges)
        self._conditional_edges = list(conditional_edges)
        self._entry_point = entry_point
        self._config = config or GraphConfig()
        self._interrupts = InterruptHandler(interrupt_before, interrupt_after)
        self._serializer = serializer or StateSerializer()
        self._checkpointer = checkpointer
        if node_cache is None:
            node_cache = NodeCache(max_entries=self._config.node_cache_max_entries)
        self._node_cache = node_cache
        self._checkpoints = GraphCheckpointManager(checkpointer, self._serializer)
        self._executor = NodeExecutor(self._node_cache, self._serializer)

    @property
    def checkpointer(self) -> Optional[CheckpointerProtocol]:
        return self._checkpointer

    @property
    def node_cache(self) -> NodeCache:
        return self._node_cache

    @property
    def entry_point(self) -> str:
        return self._entry_point

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def invoke(
        self,
        input_state: Any,
        *,
        thread_id: Optional[str] = None,
    ) -> GraphResult[StateType]:
        """Execute the graph until it completes or pauses.

        Args:
            input_state: Initial state; for a checkpointed thread, a delta
                merged into the saved state (None for no change), or
                Command.resume(value) to answer a pending interrupt()
            thread_id: Thread ID for checkpointing (generated if None)

        Returns:
            GraphResult tagged COMPLETE or INTERRUPTED

        Raises:
            NodeExecutionError: A node failed
            IterationLimitExceededError: The step cap was hit
            UnknownNodeError: Routing named a missing node
            InterruptedNotResumableError: Resume requested with no checkpoint
        """
        thread_id = thread_id or uuid.uuid4().hex
        result: Optional[GraphResult[StateType]] = None
        async for item in self._execute(input_state, thread_id, capture_custom=False):
            if isinstance(item, GraphResult):
                result = item
        if result is None:
            raise GraphExecutionError(f"Graph run on thread {thread_id} produced no result")
        return result

    async def stream(
        self,
        input_state: Any,
        mode: StreamMode = StreamMode.VALUES,
        *,
        thread_id: Optional[str] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream execution, yielding one event per executed node.

        Args:
            input_state: Same as for invoke()
            mode: What each node event carries
            thread_id: Thread ID for checkpointing

        Yields:
            StreamEvent per node; a terminal INTERRUPT or ERROR event ends
            the stream early
        """
        async for event in self.stream_modes(input_state, [mode], thread_id=thread_id):
            yield event

    async def stream_modes(
        self,
        input_state: Any,
        modes: Iterable[StreamMode],
        *,
        thread_id: Optional[str] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream execution with several modes at once.

        Emits one tagged event per requested mode per executed node, in
        the order the modes were requested. Custom events written by a
        node come before that node's other events.
        """
        requested = list(dict.fromkeys(modes))
        if not requested:
            raise ValueError("At least one stream mode is required")
        capture_custom = StreamMode.CUSTOM in requested
        thread_id = thread_id or uuid.uuid4().hex

        try:
            async for item in self._execute(input_state, thread_id, capture_custom=capture_custom):
                if isinstance(item, _StepRecord):
                    for data in item.custom:
                        yield StreamEvent(
                            kind=StreamEventKind.CUSTOM,
                            mode=StreamMode.CUSTOM,
                            node=item.node,
                            data=data,
                        )
                    if not item.completed:
                        continue
                    for mode in requested:
                        if mode == StreamMode.CUSTOM:
                            continue
                        snapshot = item.before if mode == StreamMode.UPDATES else item.after
                        yield StreamEvent(
                            kind=StreamEventKind.NODE,
                            mode=mode,
                            node=item.node,
                            state=copy.deepcopy(snapshot),
                        )
                elif item.is_interrupted:
                    yield StreamEvent(
                        kind=StreamEventKind.INTERRUPT,
                        node=item.node_history[-1] if item.node_history else None,
                        state=item.state,
                        data=item.interrupt,
                        next_node=item.next_node,
                    )
        except Exception as e:
            logger.error(f"Graph stream failed: {e}")
            yield StreamEvent(kind=StreamEventKind.ERROR, error=e)

    async def _execute(
        self,
        input_state: Any,
        thread_id: str,
        capture_custom: bool,
    ) -> AsyncIterator[Union[_StepRecord, GraphResult[StateType]]]:
        """The scheduler loop shared by invoke and stream.

        Yields a _StepRecord per executed node and finishes with exactly
        one GraphResult. Failures propagate as exceptions.
        """
        started = time.time()
        controller = IterationController(self._config.max_iterations)
        start = await self._checkpoints.load_initial_state(
            thread_id=thread_id,
            input_state=input_state,
            entry_point=self._entry_point,
        )

        state = start.state
        current = start.node
        pending = start.pending
        resume = start.resume
        needs_save = start.needs_save
        # Node whose interrupt_before pause the latest checkpoint records
        marked_before: Optional[str] = start.node if start.paused_before else None
        skip_interrupt_before = start.paused_before
        node_history: list[str] = []

        def finish(
            status: ExecutionStatus,
            next_node: Optional[str] = None,
            payload: Any = None,
        ) -> GraphResult[StateType]:
            return GraphResult(
                status=status,
                state=state,
                thread_id=thread_id,
                next_node=next_node,
                interrupt=payload,
                node_history=node_history,
                iterations=controller.iterations,
                duration=time.time() - started,
            )

        while True:
            if current == END:
                logger.debug(f"Graph completed after {controller.iterations} node executions")
                yield finish(ExecutionStatus.COMPLETE)
                return

            # Ready -> Interrupted (declarative, before)
            if self._interrupts.should_interrupt_before(current) and not skip_interrupt_before:
                logger.info(f"Interrupt before node: {current}")
                if needs_save or marked_before != current:
                    await self._checkpoints.save_checkpoint(
                        thread_id,
                        state,
                        current,
                        pending,
                        source="interrupt_before",
                        paused_before=True,
                    )
                yield finish(ExecutionStatus.INTERRUPTED, next_node=current)
                return
            skip_interrupt_before = False

            controller.check(current, node_history)
            node = self._nodes.get(current)
            if node is None:
                raise UnknownNodeError(current)

            node_input = state
            send: Optional[Send] = None
            if pending and pending[0].node == current:
                send = pending.pop(0)
                node_input = merge_state(state, send.payload)

            custom: list[Any] = []
            output, cached = await self._executor.execute(
                node,
                node_input,
                resume=resume,
                writer=custom.append if capture_custom else None,
            )
            resume = None

            # Ready -> Interrupted (programmatic); the node's contribution is dropped
            if isinstance(output, Interrupt):
                logger.info(f"Node '{current}' requested an interrupt")
                if send is not None:
                    pending.insert(0, send)
                if needs_save:
                    # Reaching here means any interrupt_before pause on this node is done
                    await self._checkpoints.save_checkpoint(
                        thread_id,
                        state,
                        current,
                        pending,
                        source=current,
                        paused_before=self._interrupts.should_interrupt_before(current),
                    )
                if custom:
                    yield _StepRecord(current, node_input, None, custom, completed=False)
                yield finish(ExecutionStatus.INTERRUPTED, next_node=current, payload=output.value)
                return

            state, next_node, pending, resume = self._apply_output(
                current, node_input, output, pending
            )
            node_history.append(current)
            logger.debug(f"Executed node: {current}{' (cached)' if cached else ''} -> {next_node}")

            pause_after = self._interrupts.should_interrupt_after(current) and next_node != END
            pause_before_next = (
                not pause_after
                and next_node != END
                and self._interrupts.should_interrupt_before(next_node)
            )
            await self._checkpoints.save_checkpoint(
                thread_id,
                state,
                None if next_node == END else next_node,
                pending,
                source=current,
                paused_before=pause_before_next,
            )
            needs_save = False
            marked_before = next_node if pause_before_next else None

            yield _StepRecord(current, node_input, state, custom, cached=cached)

            # Ready -> Interrupted (declarative, after); a finished run just completes
            if pause_after:
                logger.info(f"Interrupt after node: {current}")
                yield finish(ExecutionStatus.INTERRUPTED, next_node=next_node)
                return

            current = next_node

    # -------------------------------------------------------------------------
    # Routing
    # -------------------------------------------------------------------------

    def _apply_output(
        self,
        current: str,
        state: Any,
        output: Any,
        pending: list[Send],
    ) -> tuple[Any, str, list[Send], Optional[_ResumeSlot]]:
        """Fold a node output into state and pick the next node.

        Precedence: Command override, then pending fan-out, then the
        conditional edge, then the first fixed edge, then END.

        Returns:
            Tuple of (new_state, next_node, pending_sends, resume_for_next)
        """
        target: Optional[str] = None
        resume: Optional[_ResumeSlot] = None

        if isinstance(output, Command):
            kind = output.kind
            new_state = state
            if kind == CommandKind.GOTO:
                target = output.target
                pending = []
            elif kind == CommandKind.GOTO_WITH_UPDATE:
                new_state = merge_state(state, output.update)
                target = output.target
                pending = []
            elif kind == CommandKind.UPDATE:
                new_state = merge_state(state, output.update)
            elif kind == CommandKind.END:
                return new_state, END, [], None
            elif kind == CommandKind.SEND:
                pending = list(output.sends)
                for send in pending:
                    self._check_target(send.node, current)
            elif kind == CommandKind.RESUME:
                resume = _ResumeSlot(output.resume_value, pending=True)

            if target is not None:
                self._check_target(target, current)
                return new_state, target, pending, resume
        else:
            new_state = output

        if pending:
            return new_state, pending[0].node, pending, resume
        return new_state, self._get_next_node(current, new_state), pending, resume

    def _get_next_node(self, current_node: str, state: Any) -> str:
        """Determine next node based on edges and state.

        Args:
            current_node: Current node name
            state: Current state

        Returns:
            Next node name or END
        """
        for conditional in self._conditional_edges:
            if conditional.source == current_node:
                target = conditional.resolve(state)
                self._check_target(target, current_node)
                return target

        for edge in self._edges:
            if edge.source == current_node:
                return edge.target

        return END

    def _check_target(self, target: str, source: str) -> None:
        if target != END and target not in self._nodes:
            raise UnknownNodeError(target, source)

    # -------------------------------------------------------------------------
    # Thread state
    # -------------------------------------------------------------------------

    async def get_state(self, thread_id: str) -> Optional[StateType]:
        """Get the latest checkpointed state for a thread.

        Returns:
            The state, or None if the thread has no checkpoint

        Raises:
            InterruptedNotResumableError: If no checkpointer is configured
        """
        checkpointer = self._checkpoints.require_checkpointer(thread_id)
        checkpoint = await checkpointer.get(thread_id)
        if checkpoint is None:
            return None
        return self._checkpoints.load_state(checkpoint)

    async def get_state_history(self, thread_id: str) -> list[tuple[StateType, Optional[str]]]:
        """Get every checkpoint of a thread as (state, next_node), oldest first.

        Raises:
            InterruptedNotResumableError: If no checkpointer is configured
        """
        checkpointer = self._checkpoints.require_checkpointer(thread_id)
        checkpoints = await checkpointer.list(thread_id)
        return [(self._checkpoints.load_state(cp), cp.next_node) for cp in checkpoints]

    async def update_state(self, thread_id: str, delta: Any) -> StateType:
        """Merge a delta into a thread's latest checkpoint (human-in-the-loop).

        The merged state is persisted as a new checkpoint with the same
        next node, so the following invoke resumes from it.

        Returns:
            The merged state

        Raises:
            InterruptedNotResumableError: If no checkpointer is configured
                or the thread has no checkpoint
        """
        checkpointer = self._checkpoints.require_checkpointer(thread_id)
        checkpoint = await checkpointer.get(thread_id)
        if checkpoint is None:
            raise InterruptedNotResumableError("No checkpoint found", thread_id)

        state = merge_state(self._checkpoints.load_state(checkpoint), delta)
        metadata = dict(checkpoint.metadata)
        metadata["source"] = "update_state"
        await checkpointer.put(
            thread_id,
            self._checkpoints.build_checkpoint(state, checkpoint.next_node, metadata),
        )
        logger.info(f"Updated state for thread {thread_id} (next: {checkpoint.next_node})")
        return state

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def get_graph_schema(self) -> dict[str, Any]:
        """Get graph structure as dictionary.

        Returns:
            Dictionary describing nodes and edges
        """
        return {
            "nodes": list(self._nodes.keys()),
            "edges": [{"source": e.source, "target": e.target} for e in self._edges],
            "conditional_edges": [
                {"source": ce.source, "path_map": dict(ce.path_map) if ce.path_map else None}
                for ce in self._conditional_edges
            ],
            "entry_point": self._entry_point,
            "interrupt_before": sorted(self._interrupts.interrupt_before),
            "interrupt_after": sorted(self._interrupts.interrupt_after),
            "deferred": sorted(name for name, node in self._nodes.items() if node.deferred),
            "cached": sorted(
                name for name, node in self._nodes.items() if node.cache_policy is not None
            ),
        }

    def __repr__(self) -> str:
        return (
            f"CompiledGraph(entry_point={self._entry_point!r}, nodes={len(self._nodes)}, "
            f"edges={len(self._edges)}, conditional_edges={len(self._conditional_edges)})"
        )


# =============================================================================
# Builder
# =============================================================================


class StateGraph(Generic[StateType]):
    """StateGraph builder for creating stateful workflows.

    Accumulates nodes, edges, the entry point, and interrupt markers;
    ``compile()`` validates everything at once and freezes the result
    into a CompiledGraph. Builder methods return self for chaining.

    Example:
        graph = StateGraph(CounterState)
        graph.add_node("a", step_a)
        graph.add_node("b", step_b)
        graph.add_edge("a", "b")
        graph.add_conditional_edge(
            "b",
            lambda s: END if s.counter >= 3 else "a",
            {"a": "a", END: END},
        )
        graph.set_entry_point("a")

        app = graph.compile()
        result = await app.invoke(CounterState())
    """

    def __init__(self, state_schema: Optional[type[StateType]] = None):
        """Initialize StateGraph.

        Args:
            state_schema: Optional state type, used to rebuild states from
                checkpoints (dataclass, TypedDict, pydantic model, dict).
                Without it, non-JSON states are rebuilt from a type tag
                stored in the checkpoint metadata
        """
        self._state_schema = state_schema
        self._nodes: dict[str, Node] = {}
        self._edges: list[Edge] = []
        self._conditional_edges: list[ConditionalEdge] = []
        self._entry_point: Optional[str] = None
        self._interrupt_before: set[str] = set()
        self._interrupt_after: set[str] = set()

    def add_node(
        self,
        name: str,
        node: Any,
        *,
        cache_policy: Optional[CachePolicy] = None,
        retry_policy: Optional[RetryPolicy] = None,
        **metadata: Any,
    ) -> "StateGraph[StateType]":
        """Add a node to the graph.

        Args:
            name: Unique node name
            node: NodeProtocol implementation or (async) callable
            cache_policy: Enables result caching for this node
            retry_policy: Wraps the node in retry middleware
            **metadata: Additional metadata

        Returns:
            Self for chaining

        Raises:
            GraphValidationError: If the name is taken or reserved
        """
        return self._register(name, node, cache_policy, retry_policy, False, metadata)

    def add_deferred_node(
        self,
        name: str,
        node: Any,
        **metadata: Any,
    ) -> "StateGraph[StateType]":
        """Add a node marked as an intended fan-in point.

        The marker is informational: deferred nodes run like any other
        node and do not wait for other branches.
        """
        return self._register(name, node, None, None, True, metadata)

    def _register(
        self,
        name: str,
        node: Any,
        cache_policy: Optional[CachePolicy],
        retry_policy: Optional[RetryPolicy],
        deferred: bool,
        metadata: dict[str, Any],
    ) -> "StateGraph[StateType]":
        if name in (END, START):
            raise GraphValidationError([f"Node name '{name}' is reserved"])
        if name in self._nodes:
            raise GraphValidationError([f"Node '{name}' already exists"])

        impl = as_node(node)
        if retry_policy is not None:
            impl = RetryNode(impl, retry_policy)

        self._nodes[name] = Node(
            name=name,
            impl=impl,
            cache_policy=cache_policy,
            deferred=deferred,
            metadata=metadata,
        )
        logger.debug(f"Added node: {name}{' (deferred)' if deferred else ''}")
        return self

    def add_edge(self, source: str, target: str) -> "StateGraph[StateType]":
        """Add a fixed edge between nodes.

        ``add_edge(START, name)`` sets the entry point.

        Args:
            source: Source node name
            target: Target node name (or END)

        Returns:
            Self for chaining
        """
        if source == START:
            return self.set_entry_point(target)
        self._edges.append(Edge(source=source, target=target))
        logger.debug(f"Added edge: {source} -> {target}")
        return self

    def add_conditional_edge(
        self,
        source: str,
        router: Router,
        path_map: Optional[dict[str, str]] = None,
    ) -> "StateGraph[StateType]":
        """Add a conditional edge.

        Args:
            source: Source node name
            router: Function returning a target node name (or a path-map label)
            path_map: Optional mapping of labels to target node names

        Returns:
            Self for chaining
        """
        self._conditional_edges.append(
            ConditionalEdge(
                source=source,
                router=router,
                path_map=dict(path_map) if path_map is not None else None,
            )
        )
        targets = list(path_map.values()) if path_map else "<dynamic>"
        logger.debug(f"Added conditional edge: {source} -> {targets}")
        return self

    def set_entry_point(self, name: str) -> "StateGraph[StateType]":
        """Set the node execution starts from (validated at compile)."""
        self._entry_point = name
        return self

    def set_finish_point(self, name: str) -> "StateGraph[StateType]":
        """Set a node as finish point (adds edge to END)."""
        return self.add_edge(name, END)

    def interrupt_before(self, names: Iterable[str]) -> "StateGraph[StateType]":
        """Pause before these nodes run (requires a checkpointer to resume)."""
        self._interrupt_before.update(names)
        return self

    def interrupt_after(self, names: Iterable[str]) -> "StateGraph[StateType]":
        """Pause after these nodes run (requires a checkpointer to resume)."""
        self._interrupt_after.update(names)
        return self

    def incoming_edge_count(self, name: str) -> int:
        """Count statically known edges into a node.

        Fixed edges and path-map entries are counted; conditional edges
        without a path map are not, since their targets are only known
        at run time.
        """
        count = sum(1 for edge in self._edges if edge.target == name)
        for conditional in self._conditional_edges:
            count += sum(1 for target in conditional.possible_targets() if target == name)
        return count

    def is_deferred(self, name: str) -> bool:
        node = self._nodes.get(name)
        return node is not None and node.deferred

    def compile(
        self,
        checkpointer: Optional[CheckpointerProtocol] = None,
        *,
        node_cache: Optional[NodeCache] = None,
        config: Optional[GraphConfig] = None,
    ) -> CompiledGraph[StateType]:
        """Compile the graph for execution.

        Args:
            checkpointer: Optional checkpointer for persistence
            node_cache: Optional node cache (a fresh, empty one if None)
            config: Execution config (settings-derived defaults if None)

        Returns:
            CompiledGraph ready for execution

        Raises:
            GraphValidationError: If the definition is invalid
        """
        errors = self._validate()
        if errors:
            raise GraphValidationError(errors)

        config = config or GraphConfig.from_settings()
        if (self._interrupt_before or self._interrupt_after) and checkpointer is None:
            logger.warning("Interrupts configured without a checkpointer; paused runs cannot resume")

        compiled: CompiledGraph[StateType] = CompiledGraph(
            nodes=dict(self._nodes),
            edges=list(self._edges),
            conditional_edges=list(self._conditional_edges),
            entry_point=self._entry_point or "",
            interrupt_before=set(self._interrupt_before),
            interrupt_after=set(self._interrupt_after),
            checkpointer=checkpointer,
            node_cache=(
                node_cache
                if node_cache is not None
                else NodeCache(max_entries=config.node_cache_max_entries)
            ),
            serializer=StateSerializer(self._state_schema),
            config=config,
        )
        logger.info(f"Compiled graph: {compiled!r}")
        return compiled

    def _validate(self) -> list[str]:
        """Validate graph structure.

        Returns:
            List of error messages
        """
        errors = []

        if not self._nodes:
            errors.append("Graph has no nodes")

        if not self._entry_point:
            errors.append("No entry point set")
        elif self._entry_point not in self._nodes:
            errors.append(f"Entry point '{self._entry_point}' not found")

        for edge in self._edges:
            if edge.source not in self._nodes:
                errors.append(f"Edge source '{edge.source}' not found")
            if edge.target != END and edge.target not in self._nodes:
                errors.append(f"Edge target '{edge.target}' not found")

        for conditional in self._conditional_edges:
            if conditional.source not in self._nodes:
                errors.append(f"Conditional edge source '{conditional.source}' not found")
            for label, target in (conditional.path_map or {}).items():
                if target != END and target not in self._nodes:
                    errors.append(
                        f"Conditional edge path_map target '{target}' not found (label: {label})"
                    )

        for kind, names in (
            ("interrupt_before", self._interrupt_before),
            ("interrupt_after", self._interrupt_after),
        ):
            for name in sorted(names):
                if name not in self._nodes:
                    errors.append(f"{kind} node '{name}' not found")

        return errors

    @classmethod
    def from_schema(
        cls,
        schema: Union[dict[str, Any], str],
        *,
        state_schema: Optional[type[StateType]] = None,
        node_registry: Optional[dict[str, Callable[..., Any]]] = None,
        condition_registry: Optional[dict[str, Router]] = None,
    ) -> "StateGraph[StateType]":
        """Create StateGraph from schema dictionary or YAML string.

        Args:
            schema: Either a dictionary schema or YAML string containing:
                - nodes: List of node definitions with id and type
                  (function or passthrough), optional deferred / cache_ttl
                - edges: List of edge definitions with source, target, type
                  (normal or conditional with condition and optional path_map)
                - entry_point: Starting node ID
                - Optional: interrupt_before, interrupt_after
            state_schema: Optional state type
            node_registry: Maps function names to node callables
            condition_registry: Maps condition names to routers

        Returns:
            StateGraph instance ready for compilation

        Raises:
            GraphValidationError: If schema is invalid or references
                unknown functions

        Example:
            graph = StateGraph.from_schema(
                \"""
                nodes:
                  - id: analyze
                    func: analyze_task
                  - id: review
                    type: passthrough
                edges:
                  - source: analyze
                    type: conditional
                    condition: needs_review
                    path_map: {yes: review, no: __end__}
                  - source: review
                    target: __end__
                entry_point: analyze
                \""",
                node_registry={"analyze_task": analyze_task},
                condition_registry={"needs_review": needs_review},
            )
        """
        import yaml

        if isinstance(schema, str):
            try:
                schema_dict = yaml.safe_load(schema)
            except yaml.YAMLError as e:
                raise GraphValidationError([f"Invalid YAML schema: {e}"], cause=e) from e
        else:
            schema_dict = schema

        if not isinstance(schema_dict, dict):
            raise GraphValidationError(["Schema must be a mapping"])

        missing_fields = [f for f in ("nodes", "edges", "entry_point") if f not in schema_dict]
        if missing_fields:
            raise GraphValidationError([f"Schema missing required fields: {missing_fields}"])

        node_registry = node_registry or {}
        condition_registry = condition_registry or {}
        graph: StateGraph[StateType] = cls(state_schema=state_schema)

        for node_def in schema_dict["nodes"]:
            if not isinstance(node_def, dict) or not node_def.get("id"):
                raise GraphValidationError([f"Invalid node definition: {node_def}"])

            node_id = node_def["id"]
            node_type = node_def.get("type", "function")
            metadata = {
                k: v
                for k, v in node_def.items()
                if k not in ("id", "type", "func", "deferred", "cache_ttl")
            }

            if node_type == "function":
                func_name = node_def.get("func")
                if not func_name:
                    raise GraphValidationError([f"Function node '{node_id}' must specify 'func'"])
                if func_name not in node_registry:
                    raise GraphValidationError(
                        [
                            f"Node function '{func_name}' not found in node_registry. "
                            f"Available: {list(node_registry.keys())}"
                        ]
                    )
                impl: Any = node_registry[func_name]
            elif node_type == "passthrough":
                impl = _passthrough
            else:
                raise GraphValidationError([f"Unsupported node type: {node_type}"])

            if node_def.get("deferred"):
                graph.add_deferred_node(node_id, impl, **metadata)
            else:
                ttl = node_def.get("cache_ttl")
                policy = CachePolicy(ttl=float(ttl)) if ttl is not None else None
                graph.add_node(node_id, impl, cache_policy=policy, **metadata)

        for edge_def in schema_dict["edges"]:
            if not isinstance(edge_def, dict) or not edge_def.get("source"):
                raise GraphValidationError([f"Invalid edge definition: {edge_def}"])

            source = edge_def["source"]
            edge_type = edge_def.get("type", "normal")

            if edge_type == "normal":
                target = edge_def.get("target")
                if target is None:
                    raise GraphValidationError([f"Edge from '{source}' must have 'target'"])
                graph.add_edge(source, target)
            elif edge_type == "conditional":
                condition_name = edge_def.get("condition")
                if not condition_name or condition_name not in condition_registry:
                    raise GraphValidationError(
                        [
                            f"Condition function '{condition_name}' not found in "
                            f"condition_registry. Available: {list(condition_registry.keys())}"
                        ]
                    )
                path_map = edge_def.get("path_map")
                if path_map is not None and not isinstance(path_map, dict):
                    raise GraphValidationError(
                        [f"Conditional edge path_map must be a mapping, got: {type(path_map)}"]
                    )
                graph.add_conditional_edge(source, condition_registry[condition_name], path_map)
            else:
                raise GraphValidationError([f"Unsupported edge type: {edge_type}"])

        graph.set_entry_point(schema_dict["entry_point"])
        graph.interrupt_before(schema_dict.get("interrupt_before") or [])
        graph.interrupt_after(schema_dict.get("interrupt_after") or [])
        return graph


def _passthrough(state: Any) -> Any:
    return state


# Convenience factory functions
def create_graph(
    state_schema: Optional[type[StateType]] = None,
) -> StateGraph[StateType]:
    """Create a new StateGraph.

    Args:
        state_schema: Optional state type used to rebuild checkpointed states

    Returns:
        New StateGraph instance
    """
    return StateGraph(state_schema)


__all__ = [
    # Core types
    "StateGraph",
    "create_graph",
    "CompiledGraph",
    "Edge",
    "ConditionalEdge",
    "EdgeType",
    # Execution
    "GraphResult",
    "ExecutionStatus",
    # Constants
    "END",
    "START",
]
