"""Conditional navigation engine for Flowform forms."""

from .authoring import WorkflowEditor, apply_with_retry
from .engine import next_block
from .errors import FlowError
from .graph import compute_block_order, find_orphans, would_orphan
from .mapping import EdgeRow, connections_to_rows, rows_to_connections, rows_to_graph
from .models import (
    Block,
    Condition,
    ConditionGroup,
    Connection,
    ConnectionMutation,
    FormGraph,
    NextBlockDecision,
    Rule,
)
from .session import NavigationSession
from .traversal import match, resolve

__all__ = [
    "Block",
    "Condition",
    "ConditionGroup",
    "Connection",
    "ConnectionMutation",
    "EdgeRow",
    "FlowError",
    "FormGraph",
    "NavigationSession",
    "NextBlockDecision",
    "Rule",
    "WorkflowEditor",
    "apply_with_retry",
    "compute_block_order",
    "connections_to_rows",
    "find_orphans",
    "match",
    "next_block",
    "resolve",
    "rows_to_connections",
    "rows_to_graph",
    "would_orphan",
]
