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

"""State contract, merging, and serialization for graph workflows.

The engine never depends on the concrete shape of a state. It only needs
two capabilities:

    - merge: fold a delta into a base snapshot (``merge_state``)
    - serialize: turn a state into JSON-compatible data and back
      (``StateSerializer``), used for checkpoints and cache keys

Any object with a ``merge(delta)`` method satisfies ``StateProtocol``.
Plain dicts are supported directly and merge by key override.

Example:
    @dataclass
    class CounterState:
        counter: int = 0

        def merge(self, delta: "CounterState") -> "CounterState":
            return CounterState(counter=self.counter + delta.counter)

    serializer = StateSerializer(CounterState)
    data = serializer.dump(CounterState(counter=3))   # {"counter": 3}
    state = serializer.load(data)                      # CounterState(counter=3)
"""

from __future__ import annotations

import copy
import hashlib
import importlib
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable

from pydantic import PydanticSchemaGenerationError, TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from stateflow.core.errors import StateSerializationError

logger = logging.getLogger(__name__)

_JSON_NATIVE = (dict, list, str, int, float, bool, type(None))


@runtime_checkable
class StateProtocol(Protocol):
    """Protocol for mergeable state objects.

    ``merge`` returns the merged state. Implementations that mutate
    ``self`` in place and return None are also accepted; the engine always
    merges into a private copy.
    """

    def merge(self, delta: Any) -> Any: ...


def merge_state(base: Any, delta: Any) -> Any:
    """Fold ``delta`` into ``base`` without mutating either.

    Args:
        base: Base state snapshot
        delta: Partial or full update (None leaves base unchanged)

    Returns:
        The merged state

    Raises:
        TypeError: If the state type has no merge capability
    """
    if delta is None:
        return base

    target = copy.deepcopy(base)
    update = copy.deepcopy(delta)

    if isinstance(target, StateProtocol):
        merged = target.merge(update)
        return target if merged is None else merged

    if isinstance(target, Mapping):
        if not isinstance(update, Mapping):
            raise TypeError(
                f"Cannot merge {type(update).__name__} into a mapping state"
            )
        result = dict(target)
        result.update(update)
        return result

    raise TypeError(
        f"State type {type(base).__name__} does not support merge; "
        "implement merge(delta) or use a dict state"
    )


@dataclass
class MessageState:
    """Built-in state holding a list of messages.

    The most common state for conversational graphs. Merging appends the
    delta's messages.
    """

    messages: list[Any] = field(default_factory=list)

    def merge(self, delta: "MessageState") -> "MessageState":
        return MessageState(messages=[*self.messages, *delta.messages])

    @property
    def last_message(self) -> Optional[Any]:
        return self.messages[-1] if self.messages else None


class StateSerializer:
    """Converts states to JSON-compatible data and back.

    Built on a pydantic ``TypeAdapter`` so dataclasses, TypedDicts,
    pydantic models and plain dicts all work. Without a schema, JSON-like
    states round-trip unchanged and any other state is described by a
    type tag (``module:QualName``) that ``load`` uses to rebuild it.
    """

    def __init__(self, state_schema: Optional[type[Any]] = None) -> None:
        self._schema = state_schema
        self._adapter: TypeAdapter[Any] = TypeAdapter(
            state_schema if state_schema is not None else Any
        )
        self._known_types: dict[str, type[Any]] = {}
        self._adapters: dict[str, TypeAdapter[Any]] = {}

    @property
    def state_schema(self) -> Optional[type[Any]]:
        return self._schema

    def type_tag(self, state: Any) -> Optional[str]:
        """Tag identifying the type to rebuild ``state`` as.

        Returns None when the schema already fixes the type or the state
        is plain JSON-like data.
        """
        if self._schema is not None or isinstance(state, _JSON_NATIVE):
            return None
        state_type = type(state)
        tag = f"{state_type.__module__}:{state_type.__qualname__}"
        self._known_types.setdefault(tag, state_type)
        return tag

    def dump(self, state: Any) -> Any:
        """Serialize a state to JSON-compatible data."""
        try:
            return self._adapter.dump_python(state, mode="json")
        except (PydanticSerializationError, TypeError, ValueError) as e:
            raise StateSerializationError(
                f"Failed to serialize state of type {type(state).__name__}: {e}",
                cause=e,
            ) from e

    def load(self, data: Any, type_tag: Optional[str] = None) -> Any:
        """Rebuild a state from serialized data.

        Args:
            data: Output of ``dump``
            type_tag: Output of ``type_tag`` for the same state, if any
        """
        if self._schema is not None:
            adapter = self._adapter
        elif type_tag is not None:
            adapter = self._adapter_for(type_tag)
        else:
            return copy.deepcopy(data)
        try:
            return adapter.validate_python(data)
        except ValidationError as e:
            raise StateSerializationError(
                f"Failed to deserialize checkpoint state: {e}",
                cause=e,
            ) from e

    def _adapter_for(self, type_tag: str) -> TypeAdapter[Any]:
        adapter = self._adapters.get(type_tag)
        if adapter is None:
            try:
                adapter = TypeAdapter(self._resolve_type(type_tag))
            except PydanticSchemaGenerationError as e:
                raise StateSerializationError(
                    f"State type '{type_tag}' cannot be rebuilt; pass state_schema to StateGraph",
                    details={"type_tag": type_tag},
                    cause=e,
                ) from e
            self._adapters[type_tag] = adapter
        return adapter

    def _resolve_type(self, type_tag: str) -> type[Any]:
        """Find the class behind a tag, first among types seen in this process."""
        known = self._known_types.get(type_tag)
        if known is not None:
            return known

        module_name, _, qualname = type_tag.partition(":")
        try:
            target: Any = importlib.import_module(module_name)
            for part in qualname.split("."):
                target = getattr(target, part)
        except (ImportError, AttributeError, ValueError) as e:
            raise StateSerializationError(
                f"Cannot resolve state type '{type_tag}'; pass state_schema to StateGraph",
                details={"type_tag": type_tag},
                cause=e,
            ) from e
        if not isinstance(target, type):
            raise StateSerializationError(f"State type tag '{type_tag}' is not a class")

        self._known_types[type_tag] = target
        return target

    def fingerprint(self, state: Any) -> str:
        """SHA-256 of the canonical JSON form of a state.

        States that serialize identically share a fingerprint.
        """
        canonical = json.dumps(
            self.dump(state), sort_keys=True, separators=(",", ":"), default=str
        )
        return hashlib.sha256(canonical.encode()).hexdigest()


__all__ = [
    "StateProtocol",
    "merge_state",
    "MessageState",
    "StateSerializer",
]
