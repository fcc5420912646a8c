"""Field catalog for the rule editor: which fields and operators a block offers,
authoring-time validation and plain-language summaries.

Nothing here is consulted during evaluation; a condition that fails
:func:`validate_condition` still loads and simply never matches at runtime.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from . import config
from .fields import ConditionField, FieldKind, to_number, try_parse_field
from .models import Block, Condition, ConditionOperator, Connection

# Block types that expose one ``choice:<value>`` field per option
CHOICE_BLOCK_TYPES = ("checkbox_group", "dropdown")

OPERATOR_LABELS: Dict[ConditionOperator, str] = {
    ConditionOperator.EQUALS: "equals",
    ConditionOperator.NOT_EQUALS: "does not equal",
    ConditionOperator.CONTAINS: "contains",
    ConditionOperator.GREATER_THAN: "is greater than",
    ConditionOperator.LESS_THAN: "is less than",
}

FIELD_LABELS: Dict[FieldKind, str] = {
    FieldKind.ANSWER: "Answer",
    FieldKind.SELECTED: "Selected",
    FieldKind.RATING: "Rating",
    FieldKind.LENGTH: "Length",
    FieldKind.DOMAIN: "Domain",
    FieldKind.WEEKDAY: "Day of Week",
    FieldKind.SENTIMENT: "Sentiment",
}


@dataclass(frozen=True)
class FieldOption:
    id: str
    label: str
    value_type: str  # string | number | boolean
    block_types: Tuple[str, ...] = ()
    operators: Tuple[ConditionOperator, ...] = (ConditionOperator.EQUALS,)


_EQ = ConditionOperator.EQUALS
_NE = ConditionOperator.NOT_EQUALS
_CONTAINS = ConditionOperator.CONTAINS
_GT = ConditionOperator.GREATER_THAN
_LT = ConditionOperator.LESS_THAN

STANDARD_FIELDS: Tuple[FieldOption, ...] = (
    FieldOption(
        "answer",
        "Answer",
        "string",
        ("short_text", "long_text", "email", "number", "date", "multiple_choice", "dropdown"),
        (_EQ, _NE, _CONTAINS),
    ),
    FieldOption("selected", "Selected", "boolean", ("checkbox_group", "dropdown"), (_EQ, _NE)),
    FieldOption("rating", "Rating", "number", ("rating",), (_EQ, _NE, _GT, _LT)),
    FieldOption("length", "Length", "number", ("short_text", "long_text"), (_EQ, _GT, _LT)),
    FieldOption("domain", "Domain", "string", ("email",), (_EQ, _NE, _CONTAINS)),
    FieldOption("weekday", "Day of Week", "string", ("date",), (_EQ, _NE)),
    FieldOption("sentiment", "Sentiment", "number", ("long_text",), (_GT, _LT)),
)


def block_type_id(block: Optional[Block]) -> Optional[str]:
    if block is None:
        return None
    return block.subtype or block.type


def block_choices(block: Optional[Block]) -> List[Dict[str, str]]:
    """Return the block's choice options as ``{"value", "label"}`` dicts."""

    if block is None:
        return []
    raw = block.settings.get("choices") or block.settings.get("options") or []
    if not isinstance(raw, list):
        return []

    choices: List[Dict[str, str]] = []
    for index, item in enumerate(raw):
        if isinstance(item, dict):
            value = item.get("value") or item.get("label") or f"option_{index}"
            label = item.get("label") or value
        else:
            value = label = str(item)
        choices.append({"value": str(value), "label": str(label)})
    return choices


def available_fields(block: Optional[Block]) -> List[FieldOption]:
    """Fields the rule editor offers for conditions on ``block``."""

    type_id = block_type_id(block)
    if type_id is None:
        return []

    fields = [option for option in STANDARD_FIELDS if type_id in option.block_types]
    if type_id in CHOICE_BLOCK_TYPES:
        for choice in block_choices(block):
            fields.append(
                FieldOption(
                    ConditionField.choice(choice["value"]).tag,
                    f'Option "{choice["label"]}"',
                    "boolean",
                    (type_id,),
                    (_EQ, _NE),
                )
            )
    return fields


def _find_field(tag: str, block: Optional[Block]) -> Optional[FieldOption]:
    for option in available_fields(block):
        if option.id == tag:
            return option
    return None


def operators_for_field(tag: str, block: Optional[Block]) -> List[ConditionOperator]:
    if not tag or block is None:
        return [_EQ]
    option = _find_field(tag, block)
    if option is not None:
        return list(option.operators)
    parsed = try_parse_field(tag)
    if parsed is not None and parsed.kind is FieldKind.CHOICE:
        return [_EQ, _NE]
    return [_EQ]


def validate_condition(condition: Optional[Condition], block: Optional[Block]) -> bool:
    """Check that ``condition`` is offered by ``block`` and its value has the right type."""

    if condition is None or not condition.field or not condition.operator:
        return False
    option = _find_field(condition.field, block)
    if option is None:
        return False
    operator = condition.parsed_operator
    if operator is None or operator not in option.operators:
        return False

    value = condition.value
    if value is None:
        return False
    if option.value_type == "boolean":
        return isinstance(value, bool)
    if option.value_type == "number":
        return to_number(value) is not None
    return isinstance(value, str)


def field_label(tag: str, block: Optional[Block] = None) -> str:
    """Human-readable name of a field tag; choice values resolve to option labels."""

    if not tag:
        return ""
    parsed = try_parse_field(tag)
    if parsed is None:
        return tag
    if parsed.kind is not FieldKind.CHOICE:
        return FIELD_LABELS[parsed.kind]

    for choice in block_choices(block):
        if parsed.option in (choice["value"], choice["label"]):
            return f'"{choice["label"]}"'
    return parsed.option or ""


def _format_value(value: Any) -> str:
    limit = config.SUMMARY_VALUE_MAX_CHARS
    if isinstance(value, str) and len(value) > limit:
        return f'"{value[:limit]}..."'
    if isinstance(value, bool):
        return f'"{str(value).lower()}"'
    if value is None:
        return '"(empty)"'
    return f'"{value}"'


def summarize_condition(condition: Condition, block: Optional[Block] = None) -> str:
    operator = condition.parsed_operator
    operator_text = OPERATOR_LABELS[operator] if operator is not None else condition.operator
    return f"{field_label(condition.field, block)} {operator_text} {_format_value(condition.value)}"


def summarize_connection(connection: Optional[Connection], block: Optional[Block] = None) -> str:
    """One-line description of a connection for the workflow sidebar."""

    if connection is None:
        return "No connection data"
    if not connection.rules:
        return "Always proceed to default target"
    if len(connection.rules) > 1:
        return "Proceed based on multiple rules"

    group = connection.rules[0].condition_group
    if not group.conditions:
        return "Always proceed to rule's target"
    joiner = f" {group.logical_operator} "
    summary = joiner.join(summarize_condition(c, block) for c in group.conditions)
    return f"If {summary}, proceed to rule's target"
