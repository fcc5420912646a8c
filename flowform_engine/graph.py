"""Authoring-time analysis over the complete connection set of one form.

Every function here takes a :class:`FormGraph` snapshot and either answers a
question about it or returns a new snapshot; nothing is mutated in place and
nothing here is consulted by the navigation resolver.
"""

from __future__ import annotations

from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Set, Tuple

from loguru import logger

from .errors import ConnectionNotFoundError, RuleNotFoundError
from .logging import timed
from .models import (
    Block,
    Connection,
    ConnectionMutation,
    FormGraph,
    OrphanDetails,
)

# ---------------------------------------------------------------------------
# Edges & incoming counts
# ---------------------------------------------------------------------------


def edge_targets(connection: Connection) -> List[str]:
    """Return the connection's targets: default first, then rules in order."""

    targets: List[str] = []
    if connection.default_target_id is not None:
        targets.append(connection.default_target_id)
    targets.extend(rule.target_block_id for rule in connection.rules if rule.target_block_id)
    return targets


def iter_edges(graph: FormGraph) -> Iterator[Tuple[Connection, str]]:
    for connection in graph.connections.values():
        for target in edge_targets(connection):
            yield connection, target


def incoming_edge_counts(graph: FormGraph) -> Counter:
    """Count incoming edges per target id, dangling ids included."""

    return Counter(target for _, target in iter_edges(graph))


def find_orphans(graph: FormGraph) -> List[str]:
    """Return known blocks with no incoming edge, excluding the start block."""

    counts = incoming_edge_counts(graph)
    return [
        block.id
        for block in graph.blocks
        if block.id != graph.start_block_id and counts[block.id] == 0
    ]


# ---------------------------------------------------------------------------
# Mutations & orphan detection
# ---------------------------------------------------------------------------


def _locate(graph: FormGraph, mutation: ConnectionMutation) -> Tuple[Connection, Optional[str]]:
    """Return the addressed connection and the target the mutation replaces."""

    connection = graph.connection_by_id(mutation.connection_id)
    if connection is None:
        raise ConnectionNotFoundError(f"Connection {mutation.connection_id} not found")
    if mutation.rule_id is None:
        return connection, connection.default_target_id
    rule = connection.find_rule(mutation.rule_id)
    if rule is None:
        raise RuleNotFoundError(
            f"Rule {mutation.rule_id} not found on connection {mutation.connection_id}"
        )
    return connection, rule.target_block_id


def old_target_of(graph: FormGraph, mutation: ConnectionMutation) -> Optional[str]:
    return _locate(graph, mutation)[1]


def apply_mutation(graph: FormGraph, mutation: ConnectionMutation) -> FormGraph:
    """Return a new snapshot with the mutation applied and the version bumped.

    Re-pointing a rule to None drops the rule, since a rule always needs a
    target.
    """

    connection, _ = _locate(graph, mutation)

    if mutation.rule_id is None:
        updated = connection.model_copy(update={"default_target_id": mutation.new_target_id})
    else:
        rules = []
        for rule in connection.rules:
            if rule.id != mutation.rule_id:
                rules.append(rule)
            elif mutation.new_target_id is not None:
                rules.append(rule.model_copy(update={"target_block_id": mutation.new_target_id}))
        updated = connection.model_copy(update={"rules": rules})

    connections = dict(graph.connections)
    connections[updated.source_id] = updated
    return graph.model_copy(update={"connections": connections, "version": graph.version + 1})


def check_mutation(graph: FormGraph, mutation: ConnectionMutation) -> Optional[OrphanDetails]:
    """Return orphan details when the mutation leaves its old target unreachable.

    The old target is orphaned when, after the change, no default target and
    no rule anywhere in the graph points at it, unless it is the start block.
    """

    _, old_target = _locate(graph, mutation)
    if old_target is None or old_target == mutation.new_target_id:
        return None
    if old_target == graph.start_block_id:
        return None

    remaining = incoming_edge_counts(apply_mutation(graph, mutation))[old_target]
    if remaining > 0:
        return None

    logger.info(
        "Edit on connection {} would orphan block {} (new target {})",
        mutation.connection_id,
        old_target,
        mutation.new_target_id,
    )
    return OrphanDetails(
        connection_id=mutation.connection_id,
        old_target_id=old_target,
        new_target_id=mutation.new_target_id,
        rule_id=mutation.rule_id,
    )


def would_orphan(graph: FormGraph, mutation: ConnectionMutation) -> bool:
    return check_mutation(graph, mutation) is not None


# ---------------------------------------------------------------------------
# Order synchronisation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OrderedBlock:
    block_id: str
    order_index: int
    disconnected: bool = False


def _stored_order(graph: FormGraph) -> List[Block]:
    # sorted() is stable, so ties keep their list position
    return sorted(graph.blocks, key=lambda block: block.order_index)


@timed("compute_block_order")
def compute_block_order(graph: FormGraph) -> List[OrderedBlock]:
    """Compute the canonical display order of the form's blocks.

    Breadth-first from the start block; each visited block enqueues its
    default target before its rule targets (in rule order). Blocks the walk
    never reaches are appended in their prior relative order and flagged
    ``disconnected``. Without a known start block the stored order is kept.
    """

    stored = _stored_order(graph)
    known = {block.id for block in stored}

    if graph.start_block_id is None or graph.start_block_id not in known:
        if graph.start_block_id is not None:
            logger.warning(
                "Start block {} is not a block of form {} – keeping stored order",
                graph.start_block_id,
                graph.form_id,
            )
        return [OrderedBlock(block.id, index) for index, block in enumerate(stored)]

    visited: List[str] = []
    seen: Set[str] = {graph.start_block_id}
    queue = deque([graph.start_block_id])
    while queue:
        block_id = queue.popleft()
        visited.append(block_id)
        connection = graph.connection_for(block_id)
        if connection is None:
            continue
        for target in edge_targets(connection):
            if target in known and target not in seen:
                seen.add(target)
                queue.append(target)

    ordering = [OrderedBlock(block_id, index) for index, block_id in enumerate(visited)]
    for block in stored:
        if block.id not in seen:
            ordering.append(OrderedBlock(block.id, len(ordering), disconnected=True))
    return ordering


def apply_block_order(graph: FormGraph, ordering: List[OrderedBlock]) -> FormGraph:
    """Write ``ordering`` into the blocks' ``order_index`` (list sorted to match)."""

    positions: Dict[str, int] = {item.block_id: item.order_index for item in ordering}
    blocks = [
        block.model_copy(update={"order_index": positions[block.id]})
        if block.id in positions
        else block
        for block in graph.blocks
    ]
    blocks.sort(key=lambda block: block.order_index)
    return graph.model_copy(update={"blocks": blocks})


# ---------------------------------------------------------------------------
# Cycle detection
# ---------------------------------------------------------------------------


@dataclass
class CycleReport:
    has_cycles: bool = False
    connection_ids: Set[str] = field(default_factory=set)


@timed("detect_cycles")
def detect_cycles(graph: FormGraph) -> CycleReport:
    """Flag connections that take part in a cycle (default or rule edges).

    Cycles are legal authoring (a respondent may be sent back), so this is a
    report for the editor rather than a validation error.
    """

    report = CycleReport()
    finished: Set[str] = set()
    nodes = list(dict.fromkeys(graph.block_ids + list(graph.connections)))

    def frame(node_id: str) -> Tuple[str, Optional[Connection], Iterator[str]]:
        connection = graph.connection_for(node_id)
        targets = edge_targets(connection) if connection is not None else []
        return node_id, connection, iter(targets)

    for root in nodes:
        if root in finished:
            continue
        # on_path maps a node to its stack position; path_edges[i] leads from stack[i] to stack[i + 1]
        on_path: Dict[str, int] = {root: 0}
        path_edges: List[str] = []
        stack = [frame(root)]
        while stack:
            node_id, connection, targets = stack[-1]
            descended = False
            for target in targets:
                if target in on_path:
                    report.has_cycles = True
                    report.connection_ids.add(connection.id)
                    # The edges from the cycle's entry point back to here close the loop
                    report.connection_ids.update(path_edges[on_path[target]:])
                    continue
                if target not in finished:
                    on_path[target] = len(stack)
                    path_edges.append(connection.id)
                    stack.append(frame(target))
                    descended = True
                    break
            if descended:
                continue
            stack.pop()
            del on_path[node_id]
            finished.add(node_id)
            if path_edges:
                path_edges.pop()

    if report.has_cycles:
        logger.info(
            "Form {} has {} connection(s) on cycles", graph.form_id, len(report.connection_ids)
        )
    return report


# ---------------------------------------------------------------------------
# Structural edits owned by the authoring layer
# ---------------------------------------------------------------------------


def connect_sequential(graph: FormGraph, block_id: Optional[str] = None) -> FormGraph:
    """Add implicit default connections between consecutive blocks.

    Only blocks without an outgoing connection get one; existing connections
    (explicit or rule-based) are never touched. With ``block_id`` only the
    connections into and out of that block are considered.
    """

    stored = _stored_order(graph)
    pairs: List[Tuple[Block, Block]] = list(zip(stored, stored[1:]))
    if block_id is not None:
        pairs = [(a, b) for a, b in pairs if block_id in (a.id, b.id)]

    connections = dict(graph.connections)
    next_index = len(connections)
    for current, following in pairs:
        if current.id in connections:
            continue
        connections[current.id] = Connection(
            source_id=current.id,
            default_target_id=following.id,
            order_index=next_index,
            is_explicit=False,
        )
        next_index += 1
        logger.debug("Auto-connected {} -> {}", current.id, following.id)

    if len(connections) == len(graph.connections):
        return graph
    return graph.model_copy(update={"connections": connections, "version": graph.version + 1})


def remove_block(graph: FormGraph, block_id: str) -> FormGraph:
    """Remove a block and repair every edge that pointed at it.

    The block's own connection is dropped. Defaults and rules elsewhere that
    targeted it are re-pointed at the removed block's default target (a
    bypass); when there is none, or the bypass is the edge's own source,
    such defaults become None and such rules are dropped.
    """

    removed = graph.connection_for(block_id)
    bypass = removed.default_target_id if removed is not None else None
    if bypass == block_id:
        bypass = None

    connections: Dict[str, Connection] = {}
    for source_id, connection in graph.connections.items():
        if source_id == block_id:
            continue
        # A bypass back to the edge's own source would become a self-loop
        target = bypass if bypass != source_id else None
        default = connection.default_target_id
        if default == block_id:
            default = target
        rules = []
        for rule in connection.rules:
            if rule.target_block_id != block_id:
                rules.append(rule)
            elif target is not None:
                rules.append(rule.model_copy(update={"target_block_id": target}))
        connections[source_id] = connection.model_copy(
            update={"default_target_id": default, "rules": rules}
        )

    blocks = [block for block in graph.blocks if block.id != block_id]
    start = graph.start_block_id
    if start == block_id:
        start = bypass

    logger.info("Removed block {} from form {} (bypass -> {})", block_id, graph.form_id, bypass)
    return graph.model_copy(
        update={
            "blocks": blocks,
            "connections": connections,
            "start_block_id": start,
            "version": graph.version + 1,
        }
    )
