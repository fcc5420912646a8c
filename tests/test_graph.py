"""Tests for orphan detection, order synchronisation and structural edits."""

from __future__ import annotations

from typing import Optional

import pytest
from conftest import make_graph, make_rule

from flowform_engine.errors import (
    ConnectionNotFoundError,
    DuplicateConnectionError,
    RuleNotFoundError,
)
from flowform_engine.graph import (
    apply_block_order,
    apply_mutation,
    check_mutation,
    compute_block_order,
    connect_sequential,
    detect_cycles,
    find_orphans,
    incoming_edge_counts,
    remove_block,
    would_orphan,
)
from flowform_engine.models import Condition, Connection, ConnectionMutation, FormGraph


def test_changing_default_orphans_intermediate_block(chain_graph) -> None:
    mutation = ConnectionMutation(connection_id="conn-A", new_target_id="C")
    details = check_mutation(chain_graph, mutation)
    assert details is not None
    assert details.connection_id == "conn-A"
    assert details.old_target_id == "B"
    assert details.new_target_id == "C"
    assert details.rule_id is None

    changed = apply_mutation(chain_graph, mutation)
    assert find_orphans(changed) == ["B"]
    assert changed.version == chain_graph.version + 1

    restore = ConnectionMutation(connection_id="conn-A", new_target_id="B")
    assert not would_orphan(changed, restore)
    assert find_orphans(apply_mutation(changed, restore)) == []


def test_other_incoming_edge_prevents_orphan() -> None:
    rule = make_rule("B", Condition(field="answer", value="x"), rule_id="r1")
    graph = make_graph(["A", "B", "C", "D"], {"A": "B", "B": "C", "C": "D"}, rules={"C": [rule]})
    assert not would_orphan(graph, ConnectionMutation(connection_id="conn-A", new_target_id="C"))


def test_same_target_null_target_and_start_never_orphan(chain_graph) -> None:
    assert not would_orphan(chain_graph, ConnectionMutation(connection_id="conn-A", new_target_id="B"))

    graph = make_graph(["A", "B"], {"A": None, "B": "A"})
    assert not would_orphan(graph, ConnectionMutation(connection_id="conn-A", new_target_id="B"))
    # B -> A is the only edge into the start block
    assert not would_orphan(graph, ConnectionMutation(connection_id="conn-B", new_target_id=None))


def test_rule_mutation_orphans_rule_target() -> None:
    rule = make_rule("C", Condition(field="answer", value="x"), rule_id="r1")
    graph = make_graph(["A", "B", "C"], {"A": "B"}, rules={"A": [rule]})
    details = check_mutation(graph, ConnectionMutation(connection_id="conn-A", rule_id="r1", new_target_id="B"))
    assert details is not None
    assert details.old_target_id == "C"
    assert details.rule_id == "r1"


def test_dangling_targets_count_as_edges() -> None:
    graph = make_graph(["A", "B"], {"A": "B", "B": "ghost"})
    assert incoming_edge_counts(graph)["ghost"] == 1
    assert would_orphan(graph, ConnectionMutation(connection_id="conn-B", new_target_id=None))


def test_mutation_errors(chain_graph) -> None:
    with pytest.raises(ConnectionNotFoundError):
        apply_mutation(chain_graph, ConnectionMutation(connection_id="missing", new_target_id="C"))
    with pytest.raises(RuleNotFoundError):
        check_mutation(chain_graph, ConnectionMutation(connection_id="conn-A", rule_id="nope", new_target_id="C"))


def test_rule_repointed_to_none_is_dropped() -> None:
    rule = make_rule("C", rule_id="r1")
    graph = make_graph(["A", "B", "C"], {"A": "B"}, rules={"A": [rule]})
    updated = apply_mutation(graph, ConnectionMutation(connection_id="conn-A", rule_id="r1", new_target_id=None))
    assert updated.connections["A"].rules == []
    # The input snapshot is untouched
    assert len(graph.connections["A"].rules) == 1


def test_build_rejects_duplicate_sources() -> None:
    with pytest.raises(DuplicateConnectionError):
        FormGraph.build([Connection(source_id="A"), Connection(source_id="A")])


def test_graph_rejects_mismatched_keys() -> None:
    with pytest.raises(ValueError):
        FormGraph(connections={"A": Connection(source_id="B")})


def test_block_order_is_bfs_default_first() -> None:
    rules = [make_rule("E", rule_id="r1"), make_rule("D", rule_id="r2")]
    graph = make_graph(
        ["A", "B", "C", "D", "E", "F"],
        {"A": "C", "C": "B"},
        rules={"A": rules},
    )
    order = compute_block_order(graph)
    assert [item.block_id for item in order] == ["A", "C", "E", "D", "B", "F"]
    assert [item.order_index for item in order] == list(range(6))
    assert [item.block_id for item in order if item.disconnected] == ["F"]


def test_block_order_skips_dangling_and_handles_cycles() -> None:
    graph = make_graph(["A", "B", "C"], {"A": "ghost", "B": "A", "C": "B"}, rules={"A": [make_rule("B")]})
    order = compute_block_order(graph)
    assert [item.block_id for item in order] == ["A", "B", "C"]
    assert order[2].disconnected


def test_block_order_without_start_keeps_stored_order(chain_graph) -> None:
    for start in (None, "ghost"):
        graph = chain_graph.model_copy(update={"start_block_id": start})
        order = compute_block_order(graph)
        assert [item.block_id for item in order] == ["A", "B", "C"]
        assert not any(item.disconnected for item in order)


def test_apply_block_order_rewrites_indices() -> None:
    graph = make_graph(["A", "B", "C"], {"A": "C", "C": "B"})
    ordered = apply_block_order(graph, compute_block_order(graph))
    assert [(block.id, block.order_index) for block in ordered.blocks] == [("A", 0), ("C", 1), ("B", 2)]
    assert [block.id for block in graph.blocks] == ["A", "B", "C"]


def test_detect_cycles() -> None:
    graph = make_graph(["A", "B", "C"], {"A": "B", "B": "C", "C": "B"})
    report = detect_cycles(graph)
    assert report.has_cycles
    assert report.connection_ids == {"conn-B", "conn-C"}

    assert not detect_cycles(make_graph(["A", "B", "C"], {"A": "B", "B": "C"})).has_cycles


def test_connect_sequential_only_fills_gaps() -> None:
    graph = make_graph(["A", "B", "C", "D"], {"B": "D"})
    connected = connect_sequential(graph)
    assert connected.connections["A"].default_target_id == "B"
    assert connected.connections["A"].is_explicit is False
    assert connected.connections["B"].default_target_id == "D"
    assert connected.connections["C"].default_target_id == "D"
    assert "D" not in connected.connections
    assert connected.version == graph.version + 1

    assert connect_sequential(connected) is connected


def test_connect_sequential_for_single_block() -> None:
    graph = make_graph(["A", "B", "C", "D"], {})
    connected = connect_sequential(graph, block_id="C")
    assert set(connected.connections) == {"B", "C"}
    assert connected.connections["B"].default_target_id == "C"
    assert connected.connections["C"].default_target_id == "D"


def test_remove_block_bypasses_to_its_default() -> None:
    rule = make_rule("B", Condition(field="answer", value="x"), rule_id="r1")
    graph = make_graph(["A", "B", "C", "D"], {"A": "B", "B": "C", "D": "C"}, rules={"D": [rule]})
    updated = remove_block(graph, "B")
    assert "B" not in updated.block_ids
    assert "B" not in updated.connections
    assert updated.connections["A"].default_target_id == "C"
    assert updated.connections["D"].rules[0].target_block_id == "C"


def test_remove_block_without_bypass_drops_edges() -> None:
    rule = make_rule("C", rule_id="r1")
    graph = make_graph(["A", "B", "C"], {"A": "C"}, rules={"B": [rule]})
    updated = remove_block(graph, "C")
    assert updated.connections["A"].default_target_id is None
    assert updated.connections["B"].rules == []


def test_remove_start_block_promotes_bypass(chain_graph) -> None:
    updated = remove_block(chain_graph, "A")
    assert updated.start_block_id == "B"
    assert find_orphans(updated) == []


def _long_chain(size: int, loop_to: Optional[int] = None):
    block_ids = [f"b{index}" for index in range(size)]
    edges = dict(zip(block_ids, block_ids[1:]))
    if loop_to is not None:
        edges[block_ids[-1]] = block_ids[loop_to]
    return make_graph(block_ids, edges, start="b0")


def test_detect_cycles_on_long_linear_form() -> None:
    report = detect_cycles(_long_chain(2000))
    assert not report.has_cycles
    assert report.connection_ids == set()


def test_detect_cycles_on_long_loop() -> None:
    report = detect_cycles(_long_chain(2000, loop_to=0))
    assert report.has_cycles
    assert len(report.connection_ids) == 2000


def test_detect_cycles_marks_only_the_loop_of_a_long_chain() -> None:
    report = detect_cycles(_long_chain(1500, loop_to=1000))
    assert report.connection_ids == {f"conn-b{index}" for index in range(1000, 1500)}


def test_remove_block_does_not_create_self_loop() -> None:
    rule = make_rule("B", Condition(field="answer", value="x"), rule_id="r1")
    graph = make_graph(["A", "B", "C"], {"A": "B", "B": "A", "C": "A"}, rules={"A": [rule]})
    updated = remove_block(graph, "B")
    assert updated.connections["A"].default_target_id is None
    assert updated.connections["A"].rules == []
    assert updated.connections["C"].default_target_id == "A"
    assert not detect_cycles(updated).has_cycles
