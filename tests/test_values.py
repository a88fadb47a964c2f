import math

import pytest

from jsdeob.values import (
    UNDEFINED,
    JSArray,
    loose_equals,
    number_to_string,
    parse_float,
    parse_int,
    strict_equals,
    to_int32,
    to_number,
    to_string,
    type_of,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        (0, "0"),
        (123.0, "123"),
        (0.1, "0.1"),
        (-2.5, "-2.5"),
        (1e21, "1e+21"),
        (1.5e-7, "1.5e-7"),
        (2**53, "9007199254740992"),
        (float("inf"), "Infinity"),
        (float("nan"), "NaN"),
    ],
)
def test_number_to_string_matches_js(value, expected):
    assert number_to_string(value) == expected


@pytest.mark.parametrize(
    "text, expected",
    [
        ("  12 ", 12),
        ("0x10", 16),
        ("0b101", 5),
        ("", 0),
        ("1e3", 1000),
        ("-Infinity", -math.inf),
    ],
)
def test_string_to_number(text, expected):
    assert to_number(text) == expected


def test_non_numeric_strings_are_nan():
    assert math.isnan(to_number("abc"))
    assert math.isnan(to_number(UNDEFINED))
    assert to_number(None) == 0


def test_int32_wraps():
    assert to_int32(2**32 + 5) == 5
    assert to_int32(2**31) == -(2**31)
    assert to_int32(float("nan")) == 0


def test_equality_rules():
    assert loose_equals(None, UNDEFINED)
    assert not strict_equals(None, UNDEFINED)
    assert strict_equals(1, 1.0)
    assert loose_equals("", 0)
    assert not strict_equals(float("nan"), float("nan"))
    shared = JSArray([1])
    assert strict_equals(shared, shared)
    assert not strict_equals(shared, JSArray([1]))


def test_parse_int_and_float():
    assert parse_int("12px") == 12
    assert parse_int("ff", 16) == 255
    assert math.isnan(parse_int("px"))
    assert parse_float("3.5e2x") == 350


def test_array_conversions():
    array = JSArray(["a", None, 3])

    assert to_string(array) == "a,,3"
    assert array.get("length") == 3
    assert array.get(1.0) is None
    assert array.get(5) is UNDEFINED
    assert array.get("foo") is UNDEFINED


def test_type_of():
    assert type_of(UNDEFINED) == "undefined"
    assert type_of(None) == "object"
    assert type_of(True) == "boolean"
    assert type_of(1.5) == "number"
    assert type_of(JSArray()) == "object"
