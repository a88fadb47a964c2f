"""Read-only structural questions passes ask about a tree."""

from __future__ import annotations

from typing import Iterable, List, Optional, Set

from .evaluator import try_constant
from .tree import SyntaxTree
from .values import to_boolean

LOOP_KINDS = frozenset({"WhileStatement", "DoWhileStatement", "ForStatement", "ForInStatement", "ForOfStatement"})
FUNCTION_KINDS = frozenset({"FunctionDeclaration", "FunctionExpression", "ArrowFunctionExpression"})
_PURE_LEAVES = frozenset({"Literal", "Identifier", "ThisExpression", "FunctionExpression", "ArrowFunctionExpression"})


def is_pure(tree: SyntaxTree, index: Optional[int]) -> bool:
    """True when evaluating ``index`` cannot have side effects."""

    if index is None:
        return True
    kind = tree.kind(index)
    if kind in _PURE_LEAVES:
        return True
    if kind == "UnaryExpression":
        return tree.attr(index, "operator") != "delete" and is_pure(tree, tree.child(index, "argument"))
    if kind in ("BinaryExpression", "LogicalExpression"):
        return is_pure(tree, tree.child(index, "left")) and is_pure(tree, tree.child(index, "right"))
    if kind == "ConditionalExpression":
        return all(is_pure(tree, tree.child(index, role)) for role in ("test", "consequent", "alternate"))
    if kind == "ArrayExpression":
        return all(
            item is None or (tree.kind(item) != "SpreadElement" and is_pure(tree, item))
            for item in tree.children(index, "elements")
        )
    if kind == "SequenceExpression":
        return all(is_pure(tree, item) for item in tree.children(index, "expressions"))
    if kind == "TemplateLiteral":
        return all(is_pure(tree, item) for item in tree.children(index, "expressions"))
    if kind == "ObjectExpression":
        for prop in tree.children(index, "properties"):
            if prop is None or tree.kind(prop) != "Property":
                return False
            if tree.attr(prop, "computed") and not is_pure(tree, tree.child(prop, "key")):
                return False
            if not is_pure(tree, tree.child(prop, "value")):
                return False
        return True
    return False


def is_truthy_constant(tree: SyntaxTree, index: Optional[int]) -> bool:
    """``true``, ``!0``, ``!![]``, ``1`` and friends."""

    if index is None:
        return False
    ok, value = try_constant(tree, index)
    return ok and to_boolean(value)


def contains(tree: SyntaxTree, ancestor: int, node: int) -> bool:
    return node == ancestor or ancestor in tree.ancestors(node)


def mentions_name(tree: SyntaxTree, index: int, names: Iterable[str]) -> bool:
    wanted = set(names)
    return any(
        tree.kind(node) == "Identifier" and tree.attr(node, "name") in wanted for node in tree.walk(index)
    )


def escaping_jumps(tree: SyntaxTree, statements: Iterable[int], labels: Set[str] = frozenset()) -> List[int]:
    """``break``/``continue`` nodes that leave the given statements.

    Unlabelled jumps count when they are not nested in an inner loop (or,
    for ``break``, an inner ``switch``); labelled jumps count when their
    label is in ``labels``.
    """

    found: List[int] = []
    pending = [(stmt, False, False) for stmt in statements if stmt is not None]
    while pending:
        index, in_loop, in_switch = pending.pop()
        kind = tree.kind(index)
        if kind in FUNCTION_KINDS:
            continue
        if kind in ("BreakStatement", "ContinueStatement"):
            label = tree.child(index, "label")
            if label is not None:
                if tree.attr(label, "name") in labels:
                    found.append(index)
            elif kind == "BreakStatement" and not (in_loop or in_switch):
                found.append(index)
            elif kind == "ContinueStatement" and not in_loop:
                found.append(index)
            continue
        child_loop = in_loop or kind in LOOP_KINDS
        child_switch = in_switch or kind == "SwitchStatement"
        for child in tree.iter_children(index):
            pending.append((child, child_loop, child_switch))
    return found


def has_block_scoped_declaration(tree: SyntaxTree, statements: Iterable[int]) -> bool:
    for stmt in statements:
        kind = tree.kind(stmt)
        if kind in ("ClassDeclaration", "FunctionDeclaration"):
            return True
        if kind == "VariableDeclaration" and tree.attr(stmt, "kind") in ("let", "const"):
            return True
    return False


def declares_hoisted(tree: SyntaxTree, statements: Iterable[int]) -> bool:
    """True when ``var`` or function declarations occur outside nested functions."""

    pending = [stmt for stmt in statements if stmt is not None]
    while pending:
        index = pending.pop()
        kind = tree.kind(index)
        if kind == "FunctionDeclaration":
            return True
        if kind == "VariableDeclaration" and tree.attr(index, "kind", "var") == "var":
            return True
        if kind in FUNCTION_KINDS:
            continue
        pending.extend(tree.iter_children(index))
    return False


def is_terminal(tree: SyntaxTree, index: Optional[int]) -> bool:
    return tree.kind(index) in ("ReturnStatement", "ThrowStatement")


def enclosing_function(tree: SyntaxTree, index: int) -> Optional[int]:
    for ancestor in tree.ancestors(index):
        if tree.kind(ancestor) in FUNCTION_KINDS:
            return ancestor
    return None


__all__ = [
    "FUNCTION_KINDS",
    "LOOP_KINDS",
    "contains",
    "declares_hoisted",
    "enclosing_function",
    "escaping_jumps",
    "has_block_scoped_declaration",
    "is_pure",
    "is_terminal",
    "is_truthy_constant",
    "mentions_name",
]
