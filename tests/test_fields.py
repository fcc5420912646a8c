"""Tests for condition field tags and answer extraction."""

from __future__ import annotations

from datetime import date, datetime

import pytest

from flowform_engine.fields import (
    ConditionField,
    FieldKind,
    extract_field_value,
    to_number,
    try_parse_field,
)


def test_parse_fixed_tags() -> None:
    for kind in FieldKind:
        if kind is FieldKind.CHOICE:
            continue
        parsed = ConditionField.parse(kind.value)
        assert parsed.kind is kind
        assert parsed.option is None
        assert parsed.tag == kind.value


def test_parse_choice_keeps_everything_after_first_colon() -> None:
    parsed = ConditionField.parse("choice:time:morning")
    assert parsed.kind is FieldKind.CHOICE
    assert parsed.option == "time:morning"
    assert parsed.tag == "choice:time:morning"
    assert ConditionField.choice("red") == ConditionField.parse("choice:red")


@pytest.mark.parametrize("tag", ["", "colour", "choice", "Answer", None])
def test_unknown_tags(tag) -> None:
    with pytest.raises(ValueError):
        ConditionField.parse(tag)
    assert try_parse_field(tag) is None


@pytest.mark.parametrize(
    "value,expected",
    [(3, 3.0), ("4.5", 4.5), (" 7 ", 7.0), ("abc", None), ("", None), (True, None), (float("nan"), None), ("inf", None)],
)
def test_to_number(value, expected) -> None:
    assert to_number(value) == expected


def test_selected_extraction() -> None:
    selected = ConditionField.parse("selected")
    assert extract_field_value(selected, ["yes", "maybe"]) == "yes"
    assert extract_field_value(selected, "yes") == "yes"
    assert extract_field_value(selected, []) is None
    # A boolean comparand asks whether anything is selected
    assert extract_field_value(selected, ["a"], True) is True
    assert extract_field_value(selected, [], True) is False


def test_length_and_domain() -> None:
    assert extract_field_value(ConditionField.parse("length"), "hello") == 5
    assert extract_field_value(ConditionField.parse("length"), 12345) == 0
    domain = ConditionField.parse("domain")
    assert extract_field_value(domain, "jane@example.com") == "example.com"
    assert extract_field_value(domain, "not-an-email") == ""
    assert extract_field_value(domain, None) == ""


def test_weekday_extraction() -> None:
    weekday = ConditionField.parse("weekday")
    # 2024-01-01 was a Monday
    assert extract_field_value(weekday, "2024-01-01") == "Monday"
    assert extract_field_value(weekday, date(2024, 1, 6)) == "Saturday"
    assert extract_field_value(weekday, datetime(2024, 1, 7, 12, 0)) == "Sunday"
    assert extract_field_value(weekday, "2024-01-03", 2) == 2
    assert extract_field_value(weekday, "yesterday") is None


def test_rating_and_sentiment() -> None:
    assert extract_field_value(ConditionField.parse("rating"), "4") == 4.0
    assert extract_field_value(ConditionField.parse("rating"), "great") is None
    sentiment = ConditionField.parse("sentiment")
    assert extract_field_value(sentiment, {"sentiment": 0.8}) == 0.8
    assert extract_field_value(sentiment, -0.2) == -0.2


def test_choice_extraction() -> None:
    red = ConditionField.choice("red")
    assert extract_field_value(red, ["blue", "red"]) is True
    assert extract_field_value(red, ["blue"]) is False
    assert extract_field_value(red, "red") is True
    assert extract_field_value(red, None) is False
