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

"""Tests for StateGraph construction and compile-time validation."""

import pytest

from stateflow.core.errors import GraphValidationError
from stateflow.framework.graph import END, START, CompiledGraph, StateGraph, create_graph
from stateflow.framework.node_cache import CachePolicy


def noop(state):
    return state


def linear_graph() -> StateGraph:
    graph = StateGraph()
    graph.add_node("a", noop)
    graph.add_node("b", noop)
    graph.add_edge("a", "b")
    graph.add_edge("b", END)
    graph.set_entry_point("a")
    return graph


class TestGraphBuilding:
    """Tests for builder methods."""

    def test_builder_methods_chain(self):
        graph = StateGraph()
        result = (
            graph.add_node("a", noop)
            .add_node("b", noop)
            .add_edge("a", "b")
            .add_conditional_edge("b", lambda s: END, {"done": END})
            .set_entry_point("a")
            .interrupt_before(["b"])
            .interrupt_after(["a"])
        )
        assert result is graph

    def test_create_graph_factory(self):
        graph = create_graph(dict)
        assert isinstance(graph, StateGraph)

    def test_duplicate_node_rejected(self):
        graph = StateGraph()
        graph.add_node("a", noop)
        with pytest.raises(GraphValidationError, match="already exists"):
            graph.add_node("a", noop)

    def test_reserved_names_rejected(self):
        graph = StateGraph()
        with pytest.raises(GraphValidationError, match="reserved"):
            graph.add_node(END, noop)
        with pytest.raises(GraphValidationError, match="reserved"):
            graph.add_node(START, noop)

    def test_non_callable_node_rejected(self):
        with pytest.raises(TypeError):
            StateGraph().add_node("a", 42)

    def test_start_edge_sets_entry_point(self):
        graph = StateGraph()
        graph.add_node("a", noop)
        graph.add_edge(START, "a")
        graph.add_edge("a", END)
        app = graph.compile()
        assert app.entry_point == "a"

    def test_set_finish_point(self):
        graph = StateGraph()
        graph.add_node("a", noop)
        graph.set_entry_point("a").set_finish_point("a")
        assert graph.compile().get_graph_schema()["edges"] == [{"source": "a", "target": END}]


class TestGraphValidation:
    """Tests for compile-time validation."""

    def test_missing_entry_point(self):
        graph = StateGraph()
        graph.add_node("a", noop)
        with pytest.raises(GraphValidationError) as exc_info:
            graph.compile()
        assert "No entry point set" in exc_info.value.errors

    def test_unknown_entry_point(self):
        graph = StateGraph()
        graph.add_node("a", noop)
        graph.set_entry_point("missing")
        with pytest.raises(GraphValidationError, match="Entry point 'missing' not found"):
            graph.compile()

    def test_empty_graph(self):
        with pytest.raises(GraphValidationError) as exc_info:
            StateGraph().compile()
        assert "Graph has no nodes" in exc_info.value.errors

    def test_edge_to_unknown_node(self):
        graph = linear_graph()
        graph.add_edge("b", "ghost")
        with pytest.raises(GraphValidationError) as exc_info:
            graph.compile()
        assert "Edge target 'ghost' not found" in exc_info.value.errors

    def test_edge_from_unknown_node(self):
        graph = linear_graph()
        graph.add_edge("ghost", "a")
        with pytest.raises(GraphValidationError, match="Edge source 'ghost' not found"):
            graph.compile()

    def test_conditional_edge_from_unknown_node(self):
        graph = linear_graph()
        graph.add_conditional_edge("ghost", lambda s: END)
        with pytest.raises(GraphValidationError, match="Conditional edge source 'ghost'"):
            graph.compile()

    def test_unknown_path_map_target(self):
        graph = linear_graph()
        graph.add_conditional_edge("b", lambda s: "again", {"again": "ghost", "stop": END})
        with pytest.raises(GraphValidationError, match="path_map target 'ghost'"):
            graph.compile()

    def test_unknown_interrupt_node(self):
        graph = linear_graph()
        graph.interrupt_before(["ghost"])
        with pytest.raises(GraphValidationError, match="interrupt_before node 'ghost'"):
            graph.compile()

    def test_all_errors_collected(self):
        """Every problem is reported at once."""
        graph = StateGraph()
        graph.add_node("a", noop)
        graph.add_edge("a", "x")
        graph.add_edge("a", "y")
        with pytest.raises(GraphValidationError) as exc_info:
            graph.compile()
        errors = exc_info.value.errors
        assert len(errors) == 3
        assert exc_info.value.details["errors"] == errors

    def test_end_is_valid_target(self):
        graph = StateGraph()
        graph.add_node("a", noop)
        graph.add_conditional_edge("a", lambda s: END, {"stop": END})
        graph.set_entry_point("a")
        assert isinstance(graph.compile(), CompiledGraph)

    def test_self_loop_is_valid(self):
        graph = StateGraph()
        graph.add_node("a", noop)
        graph.add_conditional_edge("a", lambda s: "a", {"a": "a", "stop": END})
        graph.set_entry_point("a")
        assert isinstance(graph.compile(), CompiledGraph)


class TestIntrospection:
    """Tests for structural queries."""

    def test_incoming_edge_count(self):
        graph = StateGraph()
        graph.add_node("a", noop)
        graph.add_node("b", noop)
        graph.add_node("join", noop)
        graph.add_edge("a", "join")
        graph.add_edge("b", "join")
        graph.add_conditional_edge("join", lambda s: END, {"again": "join", "stop": END})
        assert graph.incoming_edge_count("join") == 3
        assert graph.incoming_edge_count("a") == 0

    def test_dynamic_router_not_counted(self):
        graph = StateGraph()
        graph.add_node("a", noop)
        graph.add_node("b", noop)
        graph.add_conditional_edge("a", lambda s: "b")
        assert graph.incoming_edge_count("b") == 0

    def test_deferred_nodes(self):
        graph = StateGraph()
        graph.add_node("a", noop)
        graph.add_deferred_node("join", noop)
        assert graph.is_deferred("join")
        assert not graph.is_deferred("a")
        assert not graph.is_deferred("missing")

    def test_graph_schema(self):
        graph = linear_graph()
        graph.add_node("c", noop, cache_policy=CachePolicy(ttl=10))
        graph.add_deferred_node("d", noop)
        graph.add_conditional_edge("c", lambda s: END, {"stop": END})
        graph.interrupt_before(["b"])

        schema = graph.compile().get_graph_schema()

        assert schema["nodes"] == ["a", "b", "c", "d"]
        assert schema["entry_point"] == "a"
        assert {"source": "a", "target": "b"} in schema["edges"]
        assert schema["conditional_edges"] == [{"source": "c", "path_map": {"stop": END}}]
        assert schema["interrupt_before"] == ["b"]
        assert schema["interrupt_after"] == []
        assert schema["deferred"] == ["d"]
        assert schema["cached"] == ["c"]

    def test_each_compile_gets_fresh_cache(self):
        graph = linear_graph()
        first = graph.compile()
        second = graph.compile()
        assert first.node_cache is not second.node_cache
        assert len(first.node_cache) == 0
