"""JavaScript value semantics needed for closed-form evaluation.

Values are represented with plain Python objects: ``int``/``float`` for
numbers, ``str``, ``bool``, ``None`` for ``null`` and :data:`UNDEFINED`.
Arrays use :class:`JSArray` so identity (aliasing) is preserved across
assignments inside the simulated code.
"""

from __future__ import annotations

import math
import re
from typing import Any, Iterable, List, Optional


class _Undefined:
    _instance: Optional["_Undefined"] = None

    def __new__(cls) -> "_Undefined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()
NAN = float("nan")


class JSArray:
    """Mutable array with JS ``push``/``shift`` semantics."""

    __slots__ = ("items",)

    def __init__(self, items: Iterable[Any] = ()) -> None:
        self.items: List[Any] = list(items)

    def __repr__(self) -> str:
        return f"JSArray({self.items!r})"

    def get(self, index: Any) -> Any:
        if isinstance(index, bool) or not isinstance(index, (int, float)):
            if isinstance(index, str) and index == "length":
                return len(self.items)
            number = to_number(index) if isinstance(index, str) else NAN
            if isinstance(index, str) and not _is_array_index(index):
                return UNDEFINED
            index = number
        if isinstance(index, float):
            if not index.is_integer():
                return UNDEFINED
            index = int(index)
        if 0 <= index < len(self.items):
            return self.items[index]
        return UNDEFINED


_ARRAY_INDEX_RE = re.compile(r"^(?:0|[1-9][0-9]*)$")


def _is_array_index(text: str) -> bool:
    return bool(_ARRAY_INDEX_RE.match(text))


def normalise_number(value: int | float) -> int | float:
    """Collapse integral floats to ``int`` so printing and hashing agree."""

    if isinstance(value, bool):
        return int(value)
    if isinstance(value, float) and value.is_integer() and abs(value) <= 2**53:
        if value == 0 and math.copysign(1.0, value) < 0:
            return value
        return int(value)
    return value


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


_DECIMAL_RE = re.compile(r"^[+-]?(?:\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)$")
_WHITESPACE = " \t\n\r\x0b\x0c\xa0\ufeff\u2028\u2029"


def string_to_number(text: str) -> int | float:
    stripped = text.strip(_WHITESPACE)
    if stripped == "":
        return 0
    lowered = stripped.lower()
    try:
        if lowered.startswith("0x"):
            return int(stripped[2:], 16)
        if lowered.startswith("0o"):
            return int(stripped[2:], 8)
        if lowered.startswith("0b"):
            return int(stripped[2:], 2)
    except ValueError:
        return NAN
    if stripped in ("Infinity", "+Infinity"):
        return math.inf
    if stripped == "-Infinity":
        return -math.inf
    if not _DECIMAL_RE.match(stripped):
        return NAN
    return normalise_number(float(stripped))


def to_number(value: Any) -> int | float:
    if isinstance(value, bool):
        return 1 if value else 0
    if is_number(value):
        return value
    if value is None:
        return 0
    if value is UNDEFINED:
        return NAN
    if isinstance(value, str):
        return string_to_number(value)
    if isinstance(value, JSArray):
        return to_number(to_string(value))
    return NAN


def number_to_string(value: int | float) -> str:
    """Format ``value`` the way ``Number.prototype.toString()`` does."""

    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        if abs(value) < 10**21:
            return str(value)
        value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"
    if value < 0:
        return "-" + number_to_string(-value)
    digits, exponent = _shortest_digits(value)
    k = len(digits)
    n = exponent
    if k <= n <= 21:
        return digits + "0" * (n - k)
    if 0 < n <= 21:
        return digits[:n] + "." + digits[n:]
    if -6 < n <= 0:
        return "0." + "0" * (-n) + digits
    sign = "+" if n - 1 >= 0 else "-"
    mantissa = digits if k == 1 else digits[0] + "." + digits[1:]
    return f"{mantissa}e{sign}{abs(n - 1)}"


def _shortest_digits(value: float) -> tuple[str, int]:
    """Return (digits, n) with value == 0.digits * 10**n, digits minimal."""

    text = repr(value)
    mantissa, _, exp_text = text.partition("e")
    exponent = int(exp_text) if exp_text else 0
    whole, _, frac = mantissa.partition(".")
    if frac == "0":
        frac = ""
    digits = (whole + frac).lstrip("0")
    leading_zeros = len(whole + frac) - len((whole + frac).lstrip("0"))
    n = len(whole) + exponent - leading_zeros
    digits = digits.rstrip("0") or "0"
    return digits, n


def to_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return "null"
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return number_to_string(value)
    if isinstance(value, JSArray):
        return ",".join("" if item is None or item is UNDEFINED else to_string(item) for item in value.items)
    return "[object Object]"


def to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None or value is UNDEFINED:
        return False
    if is_number(value):
        return not (value == 0 or (isinstance(value, float) and math.isnan(value)))
    if isinstance(value, str):
        return value != ""
    return True


def to_int32(value: Any) -> int:
    number = to_number(value)
    if isinstance(number, float):
        if math.isnan(number) or math.isinf(number):
            return 0
        number = int(number)
    number &= 0xFFFFFFFF
    if number >= 0x80000000:
        number -= 0x100000000
    return number


def to_uint32(value: Any) -> int:
    return to_int32(value) & 0xFFFFFFFF


def type_of(value: Any) -> str:
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "object"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if callable(value) or hasattr(value, "invoke"):
        return "function"
    return "object"


def strict_equals(left: Any, right: Any) -> bool:
    if is_number(left) and is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    if isinstance(left, (str, bool)):
        return left == right
    return left is right


def loose_equals(left: Any, right: Any) -> bool:
    if (left is None or left is UNDEFINED) and (right is None or right is UNDEFINED):
        return True
    if left is None or left is UNDEFINED or right is None or right is UNDEFINED:
        return False
    if is_number(left) and isinstance(right, str):
        return left == to_number(right)
    if isinstance(left, str) and is_number(right):
        return to_number(left) == right
    if isinstance(left, bool):
        return loose_equals(to_number(left), right)
    if isinstance(right, bool):
        return loose_equals(left, to_number(right))
    if isinstance(left, JSArray) and not isinstance(right, JSArray):
        return loose_equals(to_string(left), right)
    if isinstance(right, JSArray) and not isinstance(left, JSArray):
        return loose_equals(left, to_string(right))
    return strict_equals(left, right)


_PARSE_INT_RE = re.compile(r"^[+-]?[0-9a-zA-Z]*")


def parse_int(value: Any, radix: Any = UNDEFINED) -> int | float:
    text = to_string(value).lstrip(_WHITESPACE)
    sign = 1
    if text[:1] in ("+", "-"):
        if text[0] == "-":
            sign = -1
        text = text[1:]
    base = to_int32(radix) if radix is not UNDEFINED else 0
    strip_prefix = True
    if base != 0:
        if base < 2 or base > 36:
            return NAN
        if base != 16:
            strip_prefix = False
    else:
        base = 10
    if strip_prefix and text[:2].lower() == "0x":
        text = text[2:]
        base = 16
    digits = ""
    for char in text:
        try:
            digit = int(char, 36)
        except ValueError:
            break
        if digit >= base:
            break
        digits += char
    if not digits:
        return NAN
    return sign * int(digits, base)


def parse_float(value: Any) -> int | float:
    text = to_string(value).lstrip(_WHITESPACE)
    match = re.match(r"^[+-]?(?:Infinity|\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)", text)
    if not match:
        return NAN
    token = match.group(0)
    if token.endswith("Infinity"):
        return -math.inf if token.startswith("-") else math.inf
    return normalise_number(float(token))


def js_add(left: Any, right: Any) -> Any:
    if isinstance(left, JSArray):
        left = to_string(left)
    if isinstance(right, JSArray):
        right = to_string(right)
    if isinstance(left, str) or isinstance(right, str):
        return to_string(left) + to_string(right)
    return normalise_number(to_number(left) + to_number(right))


def js_arithmetic(operator: str, left: Any, right: Any) -> int | float:
    a = to_number(left)
    b = to_number(right)
    if operator == "-":
        return normalise_number(a - b)
    if operator == "*":
        try:
            return normalise_number(a * b)
        except OverflowError:
            return math.inf
    if operator == "/":
        if b == 0:
            if a == 0 or (isinstance(a, float) and math.isnan(a)):
                return NAN
            negative = (a < 0) != (math.copysign(1.0, float(b)) < 0)
            return -math.inf if negative else math.inf
        return normalise_number(a / b)
    if operator == "%":
        if b == 0 or (isinstance(a, float) and (math.isnan(a) or math.isinf(a))):
            return NAN
        if isinstance(b, float) and math.isinf(b):
            return a
        return normalise_number(math.fmod(a, b))
    if operator == "**":
        try:
            return normalise_number(a ** b)
        except (OverflowError, ZeroDivisionError):
            return math.inf
    raise ValueError(f"unsupported arithmetic operator {operator}")


def js_bitwise(operator: str, left: Any, right: Any) -> int:
    if operator == "&":
        return to_int32(to_int32(left) & to_int32(right))
    if operator == "|":
        return to_int32(to_int32(left) | to_int32(right))
    if operator == "^":
        return to_int32(to_int32(left) ^ to_int32(right))
    shift = to_uint32(right) & 31
    if operator == "<<":
        return to_int32(to_int32(left) << shift)
    if operator == ">>":
        return to_int32(left) >> shift
    if operator == ">>>":
        return to_uint32(left) >> shift
    raise ValueError(f"unsupported bitwise operator {operator}")


def js_compare(operator: str, left: Any, right: Any) -> bool:
    if isinstance(left, str) and isinstance(right, str):
        a: Any = left
        b: Any = right
    else:
        a = to_number(left)
        b = to_number(right)
        if (isinstance(a, float) and math.isnan(a)) or (isinstance(b, float) and math.isnan(b)):
            return False
    if operator == "<":
        return a < b
    if operator == ">":
        return a > b
    if operator == "<=":
        return a <= b
    if operator == ">=":
        return a >= b
    raise ValueError(f"unsupported comparison operator {operator}")


__all__ = [
    "JSArray",
    "NAN",
    "UNDEFINED",
    "is_number",
    "js_add",
    "js_arithmetic",
    "js_bitwise",
    "js_compare",
    "loose_equals",
    "normalise_number",
    "number_to_string",
    "parse_float",
    "parse_int",
    "strict_equals",
    "string_to_number",
    "to_boolean",
    "to_int32",
    "to_number",
    "to_string",
    "to_uint32",
    "type_of",
]
