"""Condition and condition-group evaluation.

Evaluation never raises for malformed authored data: an unknown field or
operator, or operands that cannot be coerced, simply make the condition
evaluate to False.
"""
from __future__ import annotations

from typing import Any, Optional

from loguru import logger

from .fields import extract_field_value, is_sequence, to_number
from .models import Condition, ConditionGroup, ConditionOperator, LogicalOperator

_TRUE_STRINGS = {"true"}
_FALSE_STRINGS = {"false"}


def _to_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    return None


def _is_primitive(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


def _equals(left: Any, right: Any) -> Optional[bool]:
    """Return equality after type normalisation, or None when not comparable."""

    if not (_is_primitive(left) and _is_primitive(right)):
        return None

    if isinstance(left, bool) or isinstance(right, bool):
        left_bool, right_bool = _to_bool(left), _to_bool(right)
        if left_bool is None or right_bool is None:
            return None
        return left_bool == right_bool

    left_num, right_num = to_number(left), to_number(right)
    if left_num is not None and right_num is not None:
        return left_num == right_num
    return str(left) == str(right)


def _contains(haystack: Any, needle: Any) -> bool:
    if isinstance(haystack, str):
        if needle is None or not _is_primitive(needle):
            return False
        return str(needle) in haystack
    if is_sequence(haystack):
        return any(_equals(item, needle) is True for item in haystack)
    return False


def _compare(left: Any, right: Any, operator: ConditionOperator) -> bool:
    left_num, right_num = to_number(left), to_number(right)
    if left_num is None or right_num is None:
        return False
    if operator is ConditionOperator.GREATER_THAN:
        return left_num > right_num
    return left_num < right_num


def evaluate(field_value: Any, operator: Any, comparand: Any) -> bool:
    """Apply ``operator`` to an already extracted field value and the comparand."""

    if isinstance(operator, ConditionOperator):
        op = operator
    else:
        try:
            op = ConditionOperator(operator)
        except ValueError:
            logger.warning("Unsupported condition operator: {}", operator)
            return False

    if field_value is None:
        return False

    if op is ConditionOperator.EQUALS:
        return _equals(field_value, comparand) is True
    if op is ConditionOperator.NOT_EQUALS:
        return _equals(field_value, comparand) is False
    if op is ConditionOperator.CONTAINS:
        return _contains(field_value, comparand)
    return _compare(field_value, comparand, op)


def evaluate_condition(condition: Condition, answer: Any) -> bool:
    """Evaluate one authored condition against the respondent's raw answer."""

    field = condition.parsed_field
    if field is None:
        logger.warning("Condition {} references unknown field {!r}", condition.id, condition.field)
        return False
    operator = condition.parsed_operator
    if operator is None:
        logger.warning(
            "Condition {} uses unsupported operator {!r}", condition.id, condition.operator
        )
        return False

    value = extract_field_value(field, answer, condition.value)
    result = evaluate(value, operator, condition.value)
    logger.debug(
        "Condition {} | {} {} {!r} (extracted {!r}) -> {}",
        condition.id,
        field.tag,
        operator.value,
        condition.value,
        value,
        result,
    )
    return result


def evaluate_group(group: ConditionGroup, answer: Any) -> bool:
    """Combine a group's conditions with its logical operator.

    An empty group always matches.
    """

    if not group.conditions:
        return True

    logical = group.parsed_logical_operator
    if logical is None:
        logger.warning("Unsupported logical operator: {}", group.logical_operator)
        return False

    if logical is LogicalOperator.AND:
        return all(evaluate_condition(c, answer) for c in group.conditions)
    return any(evaluate_condition(c, answer) for c in group.conditions)

