"""Fold ``var a = []; a.push(x); ...`` runs into a single array literal."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Optional

from .. import builders
from ..evaluator import try_constant
from ..scope import Binding, ScopeInfo
from ..values import is_number

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..tree import SyntaxTree
    from .base import PassContext

LOG = logging.getLogger(__name__)


def _is_empty_array(tree: "SyntaxTree", info: ScopeInfo, index: Optional[int]) -> bool:
    kind = tree.kind(index)
    if kind == "ArrayExpression":
        return not tree.children(index, "elements")
    if kind in ("NewExpression", "CallExpression"):
        callee = tree.child(index, "callee")
        return (
            tree.kind(callee) == "Identifier"
            and tree.attr(callee, "name") == "Array"
            and info.resolve(callee) is None
            and not tree.children(index, "arguments")
        )
    return False


def _names_binding(tree: "SyntaxTree", info: ScopeInfo, index: Optional[int], binding: Binding) -> bool:
    return tree.kind(index) == "Identifier" and info.resolve(index) is binding


def _mentions(tree: "SyntaxTree", info: ScopeInfo, index: int, binding: Binding) -> bool:
    return any(_names_binding(tree, info, node, binding) for node in tree.walk(index))


def _property_name(tree: "SyntaxTree", member: int) -> Optional[str]:
    prop = tree.child(member, "property")
    if not tree.attr(member, "computed"):
        return tree.attr(prop, "name")
    value = tree.attr(prop, "value") if tree.kind(prop) == "Literal" else None
    return value if isinstance(value, str) else None


def _appended(tree: "SyntaxTree", info: ScopeInfo, statement: int, binding: Binding, length: int) -> Optional[List[int]]:
    """Return the appended element nodes when ``statement`` is an append on ``binding``."""

    if tree.kind(statement) != "ExpressionStatement":
        return None
    expr = tree.child(statement, "expression")
    kind = tree.kind(expr)
    if kind == "CallExpression":
        callee = tree.child(expr, "callee")
        if tree.kind(callee) != "MemberExpression" or _property_name(tree, callee) != "push":
            return None
        if not _names_binding(tree, info, tree.child(callee, "object"), binding):
            return None
        args = tree.children(expr, "arguments")
        if any(arg is None or tree.kind(arg) == "SpreadElement" for arg in args):
            return None
        if any(_mentions(tree, info, arg, binding) for arg in args):
            return None
        return [arg for arg in args if arg is not None]
    if kind == "AssignmentExpression" and tree.attr(expr, "operator") == "=":
        target = tree.child(expr, "left")
        if tree.kind(target) != "MemberExpression" or not tree.attr(target, "computed"):
            return None
        if not _names_binding(tree, info, tree.child(target, "object"), binding):
            return None
        slot = tree.child(target, "property")
        if tree.kind(slot) == "MemberExpression":
            if _property_name(tree, slot) != "length" or tree.attr(slot, "computed"):
                return None
            if not _names_binding(tree, info, tree.child(slot, "object"), binding):
                return None
        else:
            ok, value = try_constant(tree, slot)
            if not ok or not is_number(value) or value != length:
                return None
        value_node = tree.child(expr, "right")
        if _mentions(tree, info, value_node, binding):
            return None
        return [value_node]
    return None


def _is_append_reference(tree: "SyntaxTree", ident: int) -> bool:
    slot = tree.parent_slot(ident)
    if slot is None or tree.kind(slot[0]) != "MemberExpression" or slot[1] != "object":
        return False
    member = slot[0]
    outer = tree.parent_slot(member)
    if outer is None:
        return False
    parent, role, _ = outer
    if tree.kind(parent) == "CallExpression" and role == "callee":
        return _property_name(tree, member) in ("push", "unshift", "splice")
    return tree.kind(parent) == "AssignmentExpression" and role == "left" and bool(tree.attr(member, "computed"))


def _fold(ctx: "PassContext", info: ScopeInfo, declarator: int) -> Optional[int]:
    """Fold the append run following ``declarator``; returns the element count."""

    tree = ctx.tree
    ident = tree.child(declarator, "id")
    if tree.kind(ident) != "Identifier" or not _is_empty_array(tree, info, tree.child(declarator, "init")):
        return None
    declaration = tree.parent(declarator)
    if declaration is None or tree.children(declaration, "declarations")[-1] != declarator:
        return None
    location = tree.statement_list(declaration)
    binding = info.resolve(ident)
    if location is None or binding is None:
        return None
    name = binding.name
    if len(binding.declarations) != 1:
        ctx.skip(f"array {name!r} is declared more than once")
        return None
    container, role, pos = location
    run_statements: List[int] = []
    elements: List[int] = []
    for statement in tree.children(container, role)[pos + 1:]:
        if statement is None:
            break
        appended = _appended(tree, info, statement, binding, len(elements))
        if appended is None:
            break
        run_statements.append(statement)
        elements.extend(appended)
    if not run_statements:
        return None
    inside = set()
    for statement in run_statements:
        inside.update(tree.walk(statement))
    position = {node: order for order, node in enumerate(ref.node for ref in binding.references)}
    last_inside = max((position[ref.node] for ref in binding.references if ref.node in inside), default=-1)
    later = [ref.node for ref in binding.references if ref.node not in inside and position[ref.node] > last_inside]
    if any(_is_append_reference(tree, node) for node in later):
        ctx.skip(f"array {name!r} is appended to again after the folded run; left unmodified")
        return None
    literal = builders.array(tree, [tree.detach(node) for node in elements])
    tree.replace(tree.child(declarator, "init"), literal)
    for statement in run_statements:
        tree.remove(statement)
    return len(elements)


def run(ctx: "PassContext") -> Dict[str, object]:
    tree = ctx.tree
    folded: Dict[str, int] = {}
    for declarator in tree.find("VariableDeclarator"):
        if not tree.is_attached(declarator):
            continue
        size = _fold(ctx, ctx.scopes(), declarator)
        if size is None:
            continue
        ctx.count()
        name = tree.attr(tree.child(declarator, "id"), "name")
        folded[name] = size
        LOG.debug("folded %d appends into %s", size, name)
    return {"arrays": folded}


__all__ = ["run"]
