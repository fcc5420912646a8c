from __future__ import annotations

from pathlib import Path
import sys
from typing import Iterable, Optional

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from flowform_engine.models import (  # noqa: E402
    Block,
    Condition,
    ConditionGroup,
    Connection,
    FormGraph,
    Rule,
)


def make_rule(
    target: str,
    *conditions: Condition,
    logical_operator: str = "AND",
    rule_id: Optional[str] = None,
) -> Rule:
    kwargs = {"id": rule_id} if rule_id else {}
    return Rule(
        target_block_id=target,
        condition_group=ConditionGroup(logical_operator=logical_operator, conditions=list(conditions)),
        **kwargs,
    )


def make_graph(
    block_ids: Iterable[str],
    edges: dict,
    *,
    start: Optional[str] = "A",
    rules: Optional[dict] = None,
) -> FormGraph:
    """Build a graph from ``{source: default_target}`` plus optional ``{source: [Rule]}``."""

    rules = rules or {}
    blocks = [Block(id=block_id, order_index=index) for index, block_id in enumerate(block_ids)]
    connections = []
    for index, source in enumerate(dict.fromkeys(list(edges) + list(rules))):
        connections.append(
            Connection(
                id=f"conn-{source}",
                source_id=source,
                default_target_id=edges.get(source),
                rules=rules.get(source, []),
                order_index=index,
            )
        )
    return FormGraph.build(connections, blocks=blocks, start_block_id=start, form_id="form-1")


@pytest.fixture
def chain_graph() -> FormGraph:
    """A -> B -> C by default targets, A is the start block."""

    return make_graph(["A", "B", "C"], {"A": "B", "B": "C"})


@pytest.fixture
def branching_graph() -> FormGraph:
    """A branches to C on a "yes" selection, otherwise falls back to D."""

    rule = make_rule("C", Condition(field="selected", operator="equals", value="yes"), rule_id="r1")
    return make_graph(
        ["A", "B", "C", "D"],
        {"A": "D", "C": "D"},
        rules={"A": [rule]},
    )
