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

"""Stream modes and events for incremental graph execution.

Example:
    async for event in app.stream(state, StreamMode.VALUES):
        if event.kind == StreamEventKind.NODE:
            print(event.node, event.state)
        elif event.kind == StreamEventKind.INTERRUPT:
            print("waiting for input before", event.next_node)

Custom events come from node code:

    async def research(state):
        write = get_stream_writer()
        write({"progress": 0.5})
        ...
"""

from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional


class StreamMode(Enum):
    """What each node event carries.

    VALUES: full accumulated state after the node ran
    UPDATES: the state immediately before the node ran
    MESSAGES / DEBUG: same content as VALUES, for client-side filtering
    CUSTOM: payloads written by node code via ``get_stream_writer()``
    """

    VALUES = "values"
    UPDATES = "updates"
    MESSAGES = "messages"
    DEBUG = "debug"
    CUSTOM = "custom"


class StreamEventKind(Enum):
    """Shape of a stream event."""

    NODE = "node"
    CUSTOM = "custom"
    INTERRUPT = "interrupt"
    ERROR = "error"


@dataclass
class StreamEvent:
    """One item yielded by ``CompiledGraph.stream``.

    Attributes:
        kind: Event shape (node, custom, interrupt, error)
        mode: Stream mode that produced the event (None for terminal events)
        node: Node the event belongs to
        state: State snapshot (meaning depends on mode)
        data: Custom payload or interrupt payload
        error: Exception that ended the stream
        next_node: Node scheduled next (interrupt events)
    """

    kind: StreamEventKind
    mode: Optional[StreamMode] = None
    node: Optional[str] = None
    state: Any = None
    data: Any = None
    error: Optional[BaseException] = None
    next_node: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.kind in (StreamEventKind.INTERRUPT, StreamEventKind.ERROR)


StreamWriter = Callable[[Any], None]


def _noop_writer(_: Any) -> None:
    return None


_stream_writer: ContextVar[Optional[StreamWriter]] = ContextVar(
    "stateflow_stream_writer", default=None
)


def get_stream_writer() -> StreamWriter:
    """Return the writer for custom stream events.

    Outside a stream that requested ``StreamMode.CUSTOM`` the writer
    silently drops payloads.
    """
    writer = _stream_writer.get()
    return writer if writer is not None else _noop_writer


__all__ = [
    "StreamMode",
    "StreamEventKind",
    "StreamEvent",
    "StreamWriter",
    "get_stream_writer",
]
