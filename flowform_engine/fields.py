"""Condition field tags and answer extraction.

A Condition's ``field`` names which aspect of the respondent's answer is
compared. Most tags are fixed (``answer``, ``rating`` ...); ``choice:<value>``
is parametrised by an option value. Tags are parsed into a
:class:`ConditionField` so that every consumer switches on :class:`FieldKind`
rather than on raw strings.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

CHOICE_PREFIX = "choice:"

_EMAIL_RE = re.compile(r"^[^@\s]+@([^@\s]+\.[^@\s]+)$")
_WEEKDAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)


class FieldKind(str, Enum):
    ANSWER = "answer"
    SELECTED = "selected"
    RATING = "rating"
    LENGTH = "length"
    DOMAIN = "domain"
    WEEKDAY = "weekday"
    SENTIMENT = "sentiment"
    CHOICE = "choice"


@dataclass(frozen=True)
class ConditionField:
    """Parsed form of a condition ``field`` tag."""

    kind: FieldKind
    option: Optional[str] = None

    @classmethod
    def choice(cls, value: str) -> "ConditionField":
        return cls(FieldKind.CHOICE, str(value))

    @classmethod
    def parse(cls, tag: str) -> "ConditionField":
        """Parse ``tag``; raises ``ValueError`` for unknown tags."""

        if not isinstance(tag, str) or not tag:
            raise ValueError(f"Invalid condition field tag: {tag!r}")
        if tag.startswith(CHOICE_PREFIX):
            # Everything after the first colon is the option value
            return cls.choice(tag[len(CHOICE_PREFIX):])
        if tag == FieldKind.CHOICE.value:
            raise ValueError("choice field requires an option value")
        return cls(FieldKind(tag))

    @property
    def tag(self) -> str:
        if self.kind is FieldKind.CHOICE:
            return f"{CHOICE_PREFIX}{self.option}"
        return self.kind.value


def try_parse_field(tag: Any) -> Optional[ConditionField]:
    """Return the parsed tag or None when it is unknown."""

    try:
        return ConditionField.parse(tag)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Coercion helpers (shared with evaluators)
# ---------------------------------------------------------------------------


def to_number(value: Any) -> Optional[float]:
    """Return ``value`` as a finite float, or None when it is not numeric-looking."""

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def _parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def extract_field_value(field: ConditionField, answer: Any, comparand: Any = None) -> Any:
    """Extract the value of ``field`` from the respondent's ``answer``.

    The comparand is consulted only where the authored value decides the
    shape of the extraction: a boolean comparand on ``selected`` asks
    whether anything is selected, and a numeric comparand on ``weekday``
    asks for the day index (Monday=0) instead of the day name.

    Returns None when the answer cannot provide the field; the evaluator
    treats None as "does not match".
    """

    kind = field.kind

    if kind is FieldKind.ANSWER:
        return answer

    if kind is FieldKind.SELECTED:
        if isinstance(comparand, bool):
            if is_sequence(answer):
                return len(answer) > 0
            return answer not in (None, "")
        if is_sequence(answer):
            return answer[0] if len(answer) else None
        return answer

    if kind is FieldKind.RATING:
        return to_number(answer)

    if kind is FieldKind.LENGTH:
        return len(answer) if isinstance(answer, str) else 0

    if kind is FieldKind.DOMAIN:
        if isinstance(answer, str):
            match = _EMAIL_RE.match(answer.strip())
            if match:
                return match.group(1)
        return ""

    if kind is FieldKind.WEEKDAY:
        day = _parse_date(answer)
        if day is None:
            return None
        if to_number(comparand) is not None:
            return day.weekday()
        return _WEEKDAY_NAMES[day.weekday()]

    if kind is FieldKind.SENTIMENT:
        if isinstance(answer, Mapping):
            return to_number(answer.get("sentiment"))
        return to_number(answer)

    if kind is FieldKind.CHOICE:
        if is_sequence(answer):
            return any(str(item) == field.option for item in answer)
        if answer is None:
            return False
        return str(answer) == field.option

    return None
