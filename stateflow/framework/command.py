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

"""Dynamic routing commands and programmatic interrupts.

A node normally returns a new state and lets the graph's edges decide
where to go next. Returning a ``Command`` instead overrides routing for
that step:

    Command.goto("summary")                       # jump, ignore edges
    Command.goto_with_update("summary", delta)    # merge delta, then jump
    Command.with_update(delta)                    # merge delta, normal edges
    Command.end()                                 # stop now
    Command.send([Send("worker", {"chunk": 1}),   # run targets in order
                  Send("worker", {"chunk": 2})])
    Command.resume("approved")                    # hand a value to a paused node

A node pauses the run by calling ``interrupt(payload)`` (or returning
``Interrupt(payload)``). When the thread is resumed with
``invoke(Command.resume(value), thread_id=...)`` the node runs again and
the same ``interrupt()`` call returns ``value``.
"""

from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class CommandKind(Enum):
    """Kinds of routing override a node can request."""

    GOTO = "goto"
    GOTO_WITH_UPDATE = "goto_with_update"
    UPDATE = "update"
    END = "end"
    SEND = "send"
    RESUME = "resume"


@dataclass(frozen=True)
class Send:
    """One fan-out item: run ``node`` with ``payload`` merged into state.

    Attributes:
        node: Target node name
        payload: Delta merged into the state the target receives (or None)
    """

    node: str
    payload: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"node": self.node, "payload": self.payload}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Send":
        return cls(node=data["node"], payload=data.get("payload"))


@dataclass(frozen=True)
class Command:
    """A node's explicit override of normal edge-based routing."""

    kind: CommandKind
    target: Optional[str] = None
    update: Any = None
    sends: tuple[Send, ...] = field(default_factory=tuple)
    resume_value: Any = None

    @classmethod
    def goto(cls, target: str) -> "Command":
        return cls(kind=CommandKind.GOTO, target=target)

    @classmethod
    def goto_with_update(cls, target: str, update: Any) -> "Command":
        return cls(kind=CommandKind.GOTO_WITH_UPDATE, target=target, update=update)

    @classmethod
    def with_update(cls, update: Any) -> "Command":
        return cls(kind=CommandKind.UPDATE, update=update)

    @classmethod
    def end(cls) -> "Command":
        return cls(kind=CommandKind.END)

    @classmethod
    def send(cls, targets: list[Send]) -> "Command":
        return cls(kind=CommandKind.SEND, sends=tuple(targets))

    @classmethod
    def resume(cls, value: Any = None) -> "Command":
        return cls(kind=CommandKind.RESUME, resume_value=value)

    @property
    def is_routing_override(self) -> bool:
        """True for commands that replace edge routing outright."""
        return self.kind in (CommandKind.GOTO, CommandKind.GOTO_WITH_UPDATE, CommandKind.END)


@dataclass(frozen=True)
class Interrupt:
    """Node output that pauses the run.

    The node's own state contribution is discarded; the engine returns
    ``ExecutionStatus.INTERRUPTED`` carrying ``value`` as the payload.
    """

    value: Any = None


class NodeInterrupt(Exception):
    """Raised by ``interrupt()`` to unwind out of a node body.

    Caught by the engine and turned into ``Interrupt(value)``; never
    surfaces to callers.
    """

    def __init__(self, value: Any = None) -> None:
        super().__init__("node interrupted")
        self.value = value


class _ResumeSlot:
    """Single-use holder for a resume value during one node step."""

    __slots__ = ("value", "pending")

    def __init__(self, value: Any = None, pending: bool = False) -> None:
        self.value = value
        self.pending = pending

    def take(self) -> tuple[bool, Any]:
        if not self.pending:
            return False, None
        self.pending = False
        value, self.value = self.value, None
        return True, value


_resume_slot: ContextVar[Optional[_ResumeSlot]] = ContextVar("stateflow_resume_slot", default=None)


def interrupt(value: Any = None) -> Any:
    """Pause the graph from inside a node.

    Args:
        value: Payload reported to the caller (e.g. a question for a human)

    Returns:
        The resume value, when the thread was resumed with
        ``Command.resume(value)``

    Raises:
        NodeInterrupt: When no resume value is pending (handled by the engine)
    """
    slot = _resume_slot.get()
    if slot is not None:
        has_value, resumed = slot.take()
        if has_value:
            return resumed
    raise NodeInterrupt(value)


__all__ = [
    "CommandKind",
    "Command",
    "Send",
    "Interrupt",
    "NodeInterrupt",
    "interrupt",
]
