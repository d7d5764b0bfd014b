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

"""Tests for Command routing overrides and Send fan-out."""

import pytest

from stateflow.core.errors import UnknownNodeError
from stateflow.framework.command import Command, CommandKind, Send, interrupt
from stateflow.framework.graph import END, StateGraph


def tracer(name):
    def node(state):
        return {**state, "path": [*state["path"], name]}

    return node


class TestCommandConstruction:
    """Tests for the Command value type."""

    def test_constructors(self):
        assert Command.goto("x") == Command(kind=CommandKind.GOTO, target="x")
        assert Command.goto_with_update("x", {"a": 1}).update == {"a": 1}
        assert Command.with_update({"a": 1}).kind == CommandKind.UPDATE
        assert Command.end().kind == CommandKind.END
        assert Command.resume("ok").resume_value == "ok"

    def test_send_stores_tuple(self):
        command = Command.send([Send("w", {"i": 1}), Send("w", {"i": 2})])
        assert command.kind == CommandKind.SEND
        assert command.sends == (Send("w", {"i": 1}), Send("w", {"i": 2}))

    def test_routing_override(self):
        assert Command.goto("x").is_routing_override
        assert Command.end().is_routing_override
        assert not Command.with_update({}).is_routing_override
        assert not Command.send([]).is_routing_override

    def test_commands_are_immutable(self):
        command = Command.goto("x")
        with pytest.raises(AttributeError):
            command.target = "y"

    def test_send_dict_round_trip(self):
        send = Send("worker", {"chunk": 3})
        assert Send.from_dict(send.to_dict()) == send


class TestCommandRouting:
    """Tests for commands returned by nodes."""

    @pytest.mark.asyncio
    async def test_goto_skips_edges(self):
        graph = StateGraph()
        graph.add_node("a", lambda s: Command.goto("c"))
        graph.add_node("b", tracer("b"))
        graph.add_node("c", tracer("c"))
        graph.add_edge("a", "b")
        graph.set_entry_point("a")

        result = await graph.compile().invoke({"path": []})

        assert result.state["path"] == ["c"]
        assert result.node_history == ["a", "c"]

    @pytest.mark.asyncio
    async def test_goto_with_update_merges_delta(self):
        graph = StateGraph()
        graph.add_node("a", lambda s: Command.goto_with_update("c", {"flag": True}))
        graph.add_node("b", tracer("b"))
        graph.add_node("c", tracer("c"))
        graph.add_edge("a", "b")
        graph.set_entry_point("a")

        result = await graph.compile().invoke({"path": [], "flag": False})

        assert result.state == {"path": ["c"], "flag": True}

    @pytest.mark.asyncio
    async def test_update_follows_normal_edges(self):
        graph = StateGraph()
        graph.add_node("a", lambda s: Command.with_update({"note": "from a"}))
        graph.add_node("b", tracer("b"))
        graph.add_edge("a", "b")
        graph.set_entry_point("a")

        result = await graph.compile().invoke({"path": []})

        assert result.state == {"path": ["b"], "note": "from a"}

    @pytest.mark.asyncio
    async def test_end_stops_immediately(self):
        graph = StateGraph()
        graph.add_node("a", lambda s: Command.end())
        graph.add_node("b", tracer("b"))
        graph.add_edge("a", "b")
        graph.set_entry_point("a")

        result = await graph.compile().invoke({"path": []})

        assert result.is_complete
        assert result.node_history == ["a"]
        assert result.state == {"path": []}

    @pytest.mark.asyncio
    async def test_goto_unknown_node(self):
        graph = StateGraph()
        graph.add_node("a", lambda s: Command.goto("ghost"))
        graph.set_entry_point("a")

        with pytest.raises(UnknownNodeError, match="ghost"):
            await graph.compile().invoke({"path": []})

    @pytest.mark.asyncio
    async def test_goto_can_loop_back(self):
        def counter(state):
            state = {**state, "n": state["n"] + 1}
            if state["n"] < 3:
                return Command.goto_with_update("count", state)
            return state

        graph = StateGraph()
        graph.add_node("count", counter)
        graph.set_entry_point("count")

        result = await graph.compile().invoke({"n": 0})

        assert result.state == {"n": 3}
        assert result.node_history == ["count", "count", "count"]

    @pytest.mark.asyncio
    async def test_returned_resume_feeds_next_interrupt(self):
        """A node returning Command.resume answers the next node's interrupt()."""

        def confirm(state):
            answer = interrupt("proceed?")
            return {**state, "answer": answer}

        graph = StateGraph()
        graph.add_node("auto_approve", lambda s: Command.resume("yes"))
        graph.add_node("confirm", confirm)
        graph.add_edge("auto_approve", "confirm")
        graph.set_entry_point("auto_approve")

        result = await graph.compile().invoke({"path": []})

        assert result.is_complete
        assert result.state["answer"] == "yes"


class TestSendFanOut:
    """Tests for sequential fan-out via Command.send."""

    @staticmethod
    def fan_out_graph() -> StateGraph:
        def split(state):
            return Command.send([Send("worker", {"item": i}) for i in state["items"]])

        def worker(state):
            return {**state, "done": [*state["done"], state["item"] * 10]}

        graph = StateGraph()
        graph.add_node("split", split)
        graph.add_node("worker", worker)
        graph.add_node("collect", lambda s: {**s, "total": sum(s["done"])})
        graph.add_edge("worker", "collect")
        graph.set_entry_point("split")
        return graph

    @pytest.mark.asyncio
    async def test_targets_run_in_order(self):
        result = await self.fan_out_graph().compile().invoke({"items": [1, 2, 3], "done": []})

        assert result.node_history == ["split", "worker", "worker", "worker", "collect"]
        assert result.state["done"] == [10, 20, 30]
        assert result.state["total"] == 60

    @pytest.mark.asyncio
    async def test_empty_send_uses_edges(self):
        graph = StateGraph()
        graph.add_node("a", lambda s: Command.send([]))
        graph.add_node("b", tracer("b"))
        graph.add_edge("a", "b")
        graph.set_entry_point("a")

        result = await graph.compile().invoke({"path": []})

        assert result.node_history == ["a", "b"]

    @pytest.mark.asyncio
    async def test_goto_from_target_clears_queue(self):
        def worker(state):
            if state["item"] == 1:
                return Command.goto("stop")
            return state

        graph = StateGraph()
        graph.add_node("split", lambda s: Command.send([Send("worker", {"item": 1}), Send("worker", {"item": 2})]))
        graph.add_node("worker", worker)
        graph.add_node("stop", lambda s: {**s, "stopped": True})
        graph.set_entry_point("split")

        result = await graph.compile().invoke({})

        assert result.node_history == ["split", "worker", "stop"]
        assert result.state == {"item": 1, "stopped": True}

    @pytest.mark.asyncio
    async def test_send_to_unknown_node(self):
        graph = StateGraph()
        graph.add_node("a", lambda s: Command.send([Send("ghost", {})]))
        graph.set_entry_point("a")

        with pytest.raises(UnknownNodeError):
            await graph.compile().invoke({})

    @pytest.mark.asyncio
    async def test_pause_mid_fan_out_resumes_queue(self, checkpointer):
        """Pending targets survive an interrupt through the checkpoint."""
        graph = self.fan_out_graph()
        graph.interrupt_after(["worker"])
        app = graph.compile(checkpointer=checkpointer)

        first = await app.invoke({"items": [1, 2], "done": []}, thread_id="t1")
        assert first.is_interrupted
        assert first.next_node == "worker"
        assert first.state["done"] == [10]

        second = await app.invoke(None, thread_id="t1")
        assert second.is_interrupted
        assert second.next_node == "collect"
        assert second.state["done"] == [10, 20]

        third = await app.invoke(None, thread_id="t1")
        assert third.is_complete
        assert third.state["total"] == 30
