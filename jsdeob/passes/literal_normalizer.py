"""Canonicalise literal spellings so later passes see one form per value."""

from __future__ import annotations

import logging
import math
from collections import Counter
from typing import TYPE_CHECKING, Dict, Optional

from .. import builders
from ..printer import quote_string, is_identifier_name
from ..values import is_number, normalise_number, number_to_string, to_boolean

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..tree import SyntaxTree
    from .base import PassContext

LOG = logging.getLogger(__name__)


def _plain_literal(tree: "SyntaxTree", index: Optional[int]) -> bool:
    return tree.kind(index) == "Literal" and tree.attr(index, "regex") is None


def _string_literal(tree: "SyntaxTree", index: Optional[int]) -> bool:
    return _plain_literal(tree, index) and isinstance(tree.attr(index, "value"), str)


def _js_number(value: int | float) -> int | float:
    if isinstance(value, int) and abs(value) > 2**53:
        return normalise_number(float(value))
    return normalise_number(value)


def _literal_spelling(tree: "SyntaxTree", index: int) -> Optional[str]:
    raw = tree.attr(index, "raw")
    value = tree.attr(index, "value")
    if not isinstance(raw, str) or not _plain_literal(tree, index):
        return None
    if isinstance(value, bool) or value is None:
        return None
    if is_number(value):
        number = _js_number(value)
        if isinstance(number, float) and (math.isinf(number) or math.isnan(number)):
            return None
        if raw == number_to_string(number):
            return None
        tree.set_attr(index, "value", number)
        tree.set_attr(index, "raw", None)
        return "numbers"
    if isinstance(value, str) and raw != quote_string(value):
        tree.set_attr(index, "raw", None)
        return "strings"
    return None


def _negation(tree: "SyntaxTree", index: int) -> Optional[str]:
    if tree.attr(index, "operator") != "!":
        return None
    argument = tree.child(index, "argument")
    kind = tree.kind(argument)
    if _plain_literal(tree, argument):
        value = tree.attr(argument, "value")
        if is_number(value):
            value = _js_number(value)
        result = not to_boolean(value)
    elif kind == "ArrayExpression" and not tree.children(argument, "elements"):
        result = False
    elif kind == "ObjectExpression" and not tree.children(argument, "properties"):
        result = False
    else:
        return None
    tree.replace(index, builders.literal(tree, result))
    return "booleans"


def _concatenation(tree: "SyntaxTree", index: int) -> Optional[str]:
    if tree.attr(index, "operator") != "+":
        return None
    left = tree.child(index, "left")
    right = tree.child(index, "right")
    if not _string_literal(tree, right):
        return None
    tail = tree.attr(right, "value")
    if _string_literal(tree, left):
        tree.replace(index, builders.literal(tree, tree.attr(left, "value") + tail))
        return "concatenations"
    if tree.kind(left) == "BinaryExpression" and tree.attr(left, "operator") == "+":
        inner = tree.child(left, "right")
        if _string_literal(tree, inner):
            # (x + "a") + "b" is a string concatenation whatever x is
            tree.replace(inner, builders.literal(tree, tree.attr(inner, "value") + tail))
            tree.replace(index, left)
            return "concatenations"
    return None


def _dotted_member(tree: "SyntaxTree", index: int) -> Optional[str]:
    if not tree.attr(index, "computed"):
        return None
    prop = tree.child(index, "property")
    if not _string_literal(tree, prop):
        return None
    name = tree.attr(prop, "value")
    if not is_identifier_name(name):
        return None
    tree.set_attr(index, "computed", False)
    tree.set_child(index, "property", builders.identifier(tree, name))
    return "members"


_REWRITERS = {
    "Literal": _literal_spelling,
    "UnaryExpression": _negation,
    "BinaryExpression": _concatenation,
    "MemberExpression": _dotted_member,
}


def run(ctx: "PassContext") -> Dict[str, object]:
    tree = ctx.tree
    counts: Counter[str] = Counter()
    # reversed pre-order visits children before their parent
    for index in reversed(list(tree.walk())):
        rewrite = _REWRITERS.get(tree.kind(index) or "")
        if rewrite is None:
            continue
        category = rewrite(tree, index)
        if category:
            counts[category] += 1
    total = sum(counts.values())
    if total:
        ctx.count(total)
        LOG.info("normalised %d literal spellings", total)
    return dict(counts)


__all__ = ["run"]
