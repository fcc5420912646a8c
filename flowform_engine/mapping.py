"""Mapping between persisted ``workflow_edges`` rows and Connections.

One row is either a Connection's default target (no condition columns) or
one Rule (condition columns present). The three ``condition_*`` columns can
only hold a single condition, so groups they cannot express (no conditions,
several conditions, or ``OR``) also carry the whole group in
``condition_json``; on load ``condition_json`` wins over the columns.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import MappingError
from .models import (
    Block,
    Condition,
    ConditionGroup,
    Connection,
    FormGraph,
    LogicalOperator,
    Rule,
    new_id,
)


class EdgeRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    form_id: Optional[str] = None
    source_block_id: Optional[str] = None
    target_block_id: Optional[str] = None
    condition_field: Optional[str] = None
    condition_operator: Optional[str] = None
    condition_value: Any = None
    condition_id: Optional[str] = None
    condition_json: Optional[Any] = None
    order_index: Optional[int] = None
    is_explicit: bool = False

    @property
    def is_rule(self) -> bool:
        return self.condition_json is not None or (
            bool(self.condition_field) and bool(self.condition_operator)
        )

    @property
    def is_default(self) -> bool:
        return (
            self.condition_json is None
            and not self.condition_field
            and not self.condition_operator
        )


# ---------------------------------------------------------------------------
# Rows -> Connections
# ---------------------------------------------------------------------------


def _parse_group(row: EdgeRow) -> Optional[ConditionGroup]:
    payload = row.condition_json
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError:
            logger.warning("Edge row {} has unreadable condition_json", row.id)
            payload = None
    if isinstance(payload, list):
        payload = {"logical_operator": LogicalOperator.AND.value, "conditions": payload}
    if isinstance(payload, dict):
        try:
            return ConditionGroup.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Edge row {} has invalid condition_json: {}", row.id, exc)

    if row.condition_field and row.condition_operator:
        condition = Condition(
            id=row.condition_id or new_id(),
            field=row.condition_field,
            operator=row.condition_operator,
            value=row.condition_value,
        )
        return ConditionGroup(logical_operator=LogicalOperator.AND.value, conditions=[condition])
    return None


def _coerce_row(raw: Any) -> EdgeRow:
    if isinstance(raw, EdgeRow):
        return raw
    if isinstance(raw, dict):
        return EdgeRow.model_validate(raw)
    return EdgeRow.model_validate(raw, from_attributes=True)


def rows_to_connections(rows: Iterable[Any], *, strict: bool = False) -> Dict[str, Connection]:
    """Rebuild the per-source Connection map from persisted rows.

    Rows are read in ``order_index`` order (input order for ties), which is
    also the order rules are rebuilt in. Malformed rows are skipped with a
    warning, or raise :class:`MappingError` when ``strict``.
    """

    parsed = [_coerce_row(raw) for raw in rows]
    indexed = sorted(
        enumerate(parsed),
        key=lambda item: (item[1].order_index if item[1].order_index is not None else item[0]),
    )

    connections: Dict[str, Connection] = {}
    has_default: Dict[str, bool] = {}

    def _skip(row: EdgeRow, reason: str) -> None:
        if strict:
            raise MappingError(f"Edge row {row.id}: {reason}")
        logger.warning("Skipping edge row {}: {}", row.id, reason)

    for position, row in indexed:
        if not row.source_block_id:
            _skip(row, "missing source_block_id")
            continue

        connection = connections.get(row.source_block_id)
        if connection is None:
            connection = Connection(
                id=new_id(),
                source_id=row.source_block_id,
                order_index=row.order_index if row.order_index is not None else position,
                is_explicit=row.is_explicit,
            )
            connections[row.source_block_id] = connection

        if row.is_default:
            if has_default.get(row.source_block_id):
                _skip(row, f"second default row for block {row.source_block_id}")
                continue
            has_default[row.source_block_id] = True
            if row.id:
                connection.id = row.id
            connection.default_target_id = row.target_block_id
            connection.is_explicit = connection.is_explicit or row.is_explicit
            continue

        if not row.is_rule:
            _skip(row, "condition_field and condition_operator must be set together")
            continue
        if not row.target_block_id:
            _skip(row, "rule row without target_block_id")
            continue
        group = _parse_group(row)
        if group is None:
            _skip(row, "rule row without a usable condition")
            continue
        connection.rules.append(
            Rule(id=row.id or new_id(), target_block_id=row.target_block_id, condition_group=group)
        )

    logger.debug("Mapped {} edge rows to {} connections", len(parsed), len(connections))
    return connections


def rows_to_graph(
    rows: Iterable[Any],
    *,
    blocks: Optional[Iterable[Block]] = None,
    start_block_id: Optional[str] = None,
    form_id: Optional[str] = None,
    version: int = 0,
    strict: bool = False,
) -> FormGraph:
    return FormGraph(
        form_id=form_id,
        start_block_id=start_block_id,
        blocks=list(blocks or []),
        connections=rows_to_connections(rows, strict=strict),
        version=version,
    )


# ---------------------------------------------------------------------------
# Connections -> Rows
# ---------------------------------------------------------------------------


def _fits_columns(group: ConditionGroup) -> bool:
    return len(group.conditions) == 1 and group.parsed_logical_operator is LogicalOperator.AND


def connections_to_rows(
    connections: Iterable[Connection], *, form_id: Optional[str] = None
) -> List[EdgeRow]:
    """Flatten Connections into persisted rows (default row first, then rules)."""

    ordered = sorted(
        connections,
        key=lambda c: (c.order_index if c.order_index is not None else float("inf"), c.source_id),
    )

    rows: List[EdgeRow] = []
    for connection in ordered:
        if connection.default_target_id is not None or not connection.rules:
            rows.append(
                EdgeRow(
                    id=connection.id,
                    form_id=form_id,
                    source_block_id=connection.source_id,
                    target_block_id=connection.default_target_id,
                    order_index=len(rows),
                    is_explicit=connection.is_explicit,
                )
            )
        for rule in connection.rules:
            group = rule.condition_group
            first = group.conditions[0] if group.conditions else None
            rows.append(
                EdgeRow(
                    id=rule.id,
                    form_id=form_id,
                    source_block_id=connection.source_id,
                    target_block_id=rule.target_block_id,
                    condition_field=first.field if first else None,
                    condition_operator=first.operator if first else None,
                    condition_value=first.value if first else None,
                    condition_id=first.id if first else None,
                    condition_json=None if _fits_columns(group) else group.model_dump(),
                    order_index=len(rows),
                    is_explicit=connection.is_explicit,
                )
            )
    return rows
