"""Unit tests for condition parsing and matching."""

from __future__ import annotations

from app.schemas import Component, Datatype, Instance
from services.conditions import compare_value, matches, parse_condition


def _component(datatype: Datatype, *values, component_id: str = "comp") -> Component:
    return Component(
        component_id=component_id,
        datatype=datatype,
        instances=[Instance(index=f"sensor_{i:02d}", value=value) for i, value in enumerate(values, 1)],
    )


def test_parse_condition_recognises_prefix_operators() -> None:
    assert parse_condition(">=600") == (">=", "600")
    assert parse_condition("<= 12.5") == ("<=", "12.5")
    assert parse_condition(">600") == (">", "600")
    assert parse_condition("<0") == ("<", "0")
    assert parse_condition("==3") == ("==", "3")
    assert parse_condition("42") == ("==", "42")


def test_greater_or_equal_boundary() -> None:
    assert matches([_component(Datatype.number, 600)], ">=600") is True
    assert matches([_component(Datatype.number, 599.999)], ">=600") is False


def test_numeric_operators() -> None:
    reading = [_component(Datatype.number, 650)]

    assert matches(reading, ">600") is True
    assert matches(reading, "<600") is False
    assert matches(reading, "<=650") is True
    assert matches(reading, "650") is True
    assert matches(reading, "650.0") is True
    assert matches(reading, "651") is False


def test_numeric_values_given_as_strings_are_parsed() -> None:
    assert matches([_component(Datatype.number, "700")], ">600") is True


def test_unparsable_numbers_never_match() -> None:
    assert matches([_component(Datatype.number, "n/a")], ">600") is False
    assert matches([_component(Datatype.number, 700)], ">abc") is False
    assert matches([_component(Datatype.number, None)], "0") is False


def test_boolean_comparison_is_case_insensitive() -> None:
    assert matches([_component(Datatype.boolean, True)], "TRUE") is True
    assert matches([_component(Datatype.boolean, "False")], "false") is True
    assert matches([_component(Datatype.boolean, False)], "true") is False


def test_string_comparison_is_exact() -> None:
    assert matches([_component(Datatype.string, "open")], "open") is True
    assert matches([_component(Datatype.string, "Open")], "open") is False


def test_any_instance_of_any_component_matches() -> None:
    current_value = [
        _component(Datatype.number, 10, 20, component_id="a"),
        _component(Datatype.number, 5, 900, component_id="b"),
    ]

    assert matches(current_value, ">800") is True
    assert matches(current_value, ">1000") is False


def test_empty_current_value_never_matches() -> None:
    assert matches([], "1") is False
    assert matches([_component(Datatype.number)], "1") is False


def test_explicit_datatype_overrides_component_datatype() -> None:
    reading = [_component(Datatype.string, "650")]

    assert matches(reading, ">600") is False
    assert matches(reading, ">600", Datatype.number) is True


def test_compare_value_handles_none() -> None:
    assert compare_value(None, "anything", Datatype.string) is False
