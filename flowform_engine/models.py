"""Pydantic contracts for blocks, connections, rules and conditions.

These objects are plain data: the authoring layer builds and mutates them,
the engine only reads them. ``field`` and ``operator`` on a Condition are
kept as raw strings so that stale authored data (a deleted choice option, an
operator from a newer editor) still loads; the parsed forms are exposed as
properties and return None when unknown.
"""
from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import DuplicateConnectionError
from .fields import ConditionField, try_parse_field


def new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"


class LogicalOperator(str, Enum):
    AND = "AND"
    OR = "OR"


def try_parse_operator(value: Any) -> Optional[ConditionOperator]:
    try:
        return ConditionOperator(value)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------


class Block(BaseModel):
    """A node in the form graph. Only the id matters to navigation."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str = "static"
    subtype: Optional[str] = None
    title: str = ""
    settings: Dict[str, Any] = Field(default_factory=dict)
    order_index: int = 0


# ---------------------------------------------------------------------------
# Conditions & rules
# ---------------------------------------------------------------------------


class Condition(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id)
    field: str
    operator: str = ConditionOperator.EQUALS.value
    value: Any = None

    @property
    def parsed_field(self) -> Optional[ConditionField]:
        return try_parse_field(self.field)

    @property
    def parsed_operator(self) -> Optional[ConditionOperator]:
        return try_parse_operator(self.operator)


class ConditionGroup(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    logical_operator: str = LogicalOperator.AND.value
    conditions: List[Condition] = Field(default_factory=list)

    @property
    def parsed_logical_operator(self) -> Optional[LogicalOperator]:
        if not isinstance(self.logical_operator, str):
            return None
        try:
            return LogicalOperator(self.logical_operator.upper())
        except ValueError:
            return None


class Rule(BaseModel):
    """One conditional branch of a Connection. First matching rule wins."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=new_id)
    target_block_id: str
    condition_group: ConditionGroup = Field(default_factory=ConditionGroup)


class Connection(BaseModel):
    """Outgoing transitions of exactly one source Block.

    ``order_index`` is display-only and is never consulted during
    evaluation; ``rules`` are evaluated strictly in list order.
    """

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str = Field(default_factory=new_id)
    source_id: str = Field(alias="sourceId")
    default_target_id: Optional[str] = Field(default=None, alias="defaultTargetId")
    rules: List[Rule] = Field(default_factory=list)
    order_index: Optional[int] = None
    is_explicit: bool = False

    def find_rule(self, rule_id: str) -> Optional[Rule]:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None


# ---------------------------------------------------------------------------
# Graph snapshot
# ---------------------------------------------------------------------------


class FormGraph(BaseModel):
    """Snapshot of every Block and Connection of one form.

    ``connections`` is keyed by source block id, so at most one Connection
    per source exists. ``version`` is the optimistic-concurrency token the
    authoring layer compares before applying an edit.
    """

    model_config = ConfigDict(from_attributes=True)

    form_id: Optional[str] = None
    start_block_id: Optional[str] = None
    blocks: List[Block] = Field(default_factory=list)
    connections: Dict[str, Connection] = Field(default_factory=dict)
    version: int = 0

    @model_validator(mode="after")
    def _keys_match_sources(self) -> "FormGraph":
        for key, connection in self.connections.items():
            if key != connection.source_id:
                raise ValueError(
                    f"Connection {connection.id} is keyed under {key!r} "
                    f"but its source is {connection.source_id!r}"
                )
        return self

    @classmethod
    def build(
        cls,
        connections: Iterable[Connection],
        *,
        blocks: Optional[Iterable[Block]] = None,
        start_block_id: Optional[str] = None,
        form_id: Optional[str] = None,
        version: int = 0,
    ) -> "FormGraph":
        """Build a snapshot from a flat connection list.

        Raises
        ------
        DuplicateConnectionError
            If two connections share a source block.
        """

        keyed: Dict[str, Connection] = {}
        for connection in connections:
            if connection.source_id in keyed:
                raise DuplicateConnectionError(
                    f"Block {connection.source_id} already has connection "
                    f"{keyed[connection.source_id].id}; got {connection.id}"
                )
            keyed[connection.source_id] = connection
        return cls(
            form_id=form_id,
            start_block_id=start_block_id,
            blocks=list(blocks or []),
            connections=keyed,
            version=version,
        )

    @property
    def block_ids(self) -> List[str]:
        return [block.id for block in self.blocks]

    def connection_for(self, block_id: str) -> Optional[Connection]:
        return self.connections.get(block_id)

    def connection_by_id(self, connection_id: str) -> Optional[Connection]:
        for connection in self.connections.values():
            if connection.id == connection_id:
                return connection
        return None

    def block(self, block_id: str) -> Optional[Block]:
        for block in self.blocks:
            if block.id == block_id:
                return block
        return None


# ---------------------------------------------------------------------------
# Decisions & edits
# ---------------------------------------------------------------------------


class NextBlockDecision(BaseModel):
    """Result of resolving the next block: a target id or the end of the form."""

    kind: Literal["target", "end"]
    block_id: Optional[str] = None
    rule_id: Optional[str] = None

    @classmethod
    def target(cls, block_id: str, rule_id: Optional[str] = None) -> "NextBlockDecision":
        return cls(kind="target", block_id=block_id, rule_id=rule_id)

    @classmethod
    def end(cls) -> "NextBlockDecision":
        return cls(kind="end")

    @property
    def is_end(self) -> bool:
        return self.kind == "end"


class ConnectionMutation(BaseModel):
    """Pending change descriptor: re-point one default or rule target.

    ``rule_id=None`` addresses the Connection's default target.
    """

    model_config = ConfigDict(frozen=True)

    connection_id: str
    new_target_id: Optional[str] = None
    rule_id: Optional[str] = None


class OrphanDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    connection_id: str
    old_target_id: str
    new_target_id: Optional[str] = None
    rule_id: Optional[str] = None
