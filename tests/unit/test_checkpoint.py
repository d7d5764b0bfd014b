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

"""Tests for checkpoint records and the in-memory checkpointer."""

import pytest

from stateflow.framework.checkpoint import (
    Checkpoint,
    CheckpointerProtocol,
    MemoryCheckpointer,
)


class TestCheckpoint:
    """Tests for the Checkpoint record."""

    def test_defaults(self):
        checkpoint = Checkpoint(state={"a": 1})
        assert checkpoint.next_node is None
        assert len(checkpoint.checkpoint_id) == 32
        assert checkpoint.timestamp > 0
        assert checkpoint.metadata == {}

    def test_unique_ids(self):
        assert Checkpoint(state={}).checkpoint_id != Checkpoint(state={}).checkpoint_id

    def test_dict_round_trip(self):
        checkpoint = Checkpoint(
            state={"a": 1},
            next_node="tools",
            metadata={"source": "agent"},
        )
        assert Checkpoint.from_dict(checkpoint.to_dict()) == checkpoint


class TestMemoryCheckpointer:
    """Tests for MemoryCheckpointer."""

    def test_satisfies_protocol(self):
        assert isinstance(MemoryCheckpointer(), CheckpointerProtocol)

    @pytest.mark.asyncio
    async def test_get_returns_latest(self, checkpointer):
        await checkpointer.put("t1", Checkpoint(state={"step": 1}, next_node="b"))
        await checkpointer.put("t1", Checkpoint(state={"step": 2}, next_node="c"))

        latest = await checkpointer.get("t1")

        assert latest.state == {"step": 2}
        assert latest.next_node == "c"

    @pytest.mark.asyncio
    async def test_list_is_ordered(self, checkpointer):
        for step in range(3):
            await checkpointer.put("t1", Checkpoint(state={"step": step}))

        history = await checkpointer.list("t1")

        assert [cp.state["step"] for cp in history] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_threads_are_isolated(self, checkpointer):
        await checkpointer.put("t1", Checkpoint(state={"owner": "t1"}))
        await checkpointer.put("t2", Checkpoint(state={"owner": "t2"}))

        assert (await checkpointer.get("t1")).state == {"owner": "t1"}
        assert len(await checkpointer.list("t2")) == 1
        assert sorted(checkpointer.thread_ids()) == ["t1", "t2"]

    @pytest.mark.asyncio
    async def test_unknown_thread(self, checkpointer):
        assert await checkpointer.get("missing") is None
        assert await checkpointer.list("missing") == []

    @pytest.mark.asyncio
    async def test_stored_records_are_copies(self, checkpointer):
        """Mutating a record after put or get never changes stored history."""
        checkpoint = Checkpoint(state={"items": [1]})
        await checkpointer.put("t1", checkpoint)
        checkpoint.state["items"].append(2)

        loaded = await checkpointer.get("t1")
        loaded.state["items"].append(3)

        assert (await checkpointer.get("t1")).state == {"items": [1]}
