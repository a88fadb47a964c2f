"""Small constructors for the ESTree nodes the passes emit."""

from __future__ import annotations

from typing import Any, Optional, Sequence

from .tree import SyntaxTree


def identifier(tree: SyntaxTree, name: str) -> int:
    return tree.add("Identifier", {"name": name})


def literal(tree: SyntaxTree, value: Any) -> int:
    """Build a literal without a ``raw`` spelling; the printer canonicalises it."""

    if isinstance(value, float) and value.is_integer() and abs(value) < 2**53:
        value = int(value)
    return tree.add("Literal", {"value": value})


def negative_aware_number(tree: SyntaxTree, value: int | float) -> int:
    """Numbers below zero must be spelled as a unary minus over a literal."""

    if value < 0 or (value == 0 and str(value).startswith("-")):
        return tree.add("UnaryExpression", {"operator": "-", "prefix": True}, argument=literal(tree, -value))
    return literal(tree, value)


def array(tree: SyntaxTree, elements: Sequence[Optional[int]]) -> int:
    return tree.add("ArrayExpression", elements=list(elements))


def expression_statement(tree: SyntaxTree, expression: int) -> int:
    return tree.add("ExpressionStatement", expression=expression)


def block(tree: SyntaxTree, body: Sequence[int]) -> int:
    return tree.add("BlockStatement", body=list(body))


def if_statement(tree: SyntaxTree, test: int, consequent: Sequence[int], alternate: Sequence[int] = ()) -> int:
    alt = block(tree, alternate) if alternate else None
    return tree.add("IfStatement", test=test, consequent=block(tree, consequent), alternate=alt)


def unary(tree: SyntaxTree, operator: str, argument: int) -> int:
    return tree.add("UnaryExpression", {"operator": operator, "prefix": True}, argument=argument)


def member(tree: SyntaxTree, obj: int, name: str) -> int:
    return tree.add("MemberExpression", {"computed": False}, object=obj, property=identifier(tree, name))


def call(tree: SyntaxTree, callee: int, arguments: Sequence[int]) -> int:
    return tree.add("CallExpression", callee=callee, arguments=list(arguments))


__all__ = [
    "array",
    "block",
    "call",
    "expression_statement",
    "identifier",
    "if_statement",
    "literal",
    "member",
    "negative_aware_number",
    "unary",
]
