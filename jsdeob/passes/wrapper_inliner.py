"""Inline proxy functions that only forward their arguments.

A wrapper's whole body is ``return <expr>`` where ``<expr>`` is a call, a
``new``, a binary/logical operation or a unary operation over its simple
parameters, each used exactly once.  Call sites are replaced by ``<expr>``
with the arguments substituted; wrappers with no remaining reference are
deleted.  Chains collapse over several rounds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Set

from .. import builders
from ..queries import FUNCTION_KINDS, contains, is_pure
from ..scope import Binding, ScopeInfo, is_reference_position

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..tree import SyntaxTree
    from .base import PassContext

LOG = logging.getLogger(__name__)

_OPERAND_KINDS = frozenset({"Identifier", "Literal"})


@dataclass
class WrapperCandidate:
    binding: Binding
    ident: int
    function: int
    declaration: int
    params: List[str]
    body: int
    ordered: bool
    conditional: Set[str] = field(default_factory=set)
    callee_params: Set[str] = field(default_factory=set)
    outer: Dict[str, Optional[Binding]] = field(default_factory=dict)


def _returned_expression(tree: "SyntaxTree", function: int) -> Optional[int]:
    body = tree.child(function, "body")
    if tree.kind(function) == "ArrowFunctionExpression" and tree.kind(body) != "BlockStatement":
        return body
    statements = [stmt for stmt in tree.children(body, "body") if tree.kind(stmt) != "EmptyStatement"]
    if len(statements) != 1 or tree.kind(statements[0]) != "ReturnStatement":
        return None
    return tree.child(statements[0], "argument")


def _callee_ok(tree: "SyntaxTree", callee: Optional[int]) -> bool:
    kind = tree.kind(callee)
    if kind == "Identifier":
        return True
    if kind != "MemberExpression":
        return False
    prop = tree.child(callee, "property")
    if tree.attr(callee, "computed") and tree.kind(prop) not in _OPERAND_KINDS:
        return False
    return _callee_ok(tree, tree.child(callee, "object"))


def _operands(tree: "SyntaxTree", expr: int) -> Optional[List[tuple]]:
    """Return ``(node, conditional)`` for each operand in evaluation order."""

    kind = tree.kind(expr)
    if kind in ("CallExpression", "NewExpression"):
        callee = tree.child(expr, "callee")
        if not _callee_ok(tree, callee):
            return None
        args = tree.children(expr, "arguments")
        if any(tree.kind(arg) not in _OPERAND_KINDS for arg in args):
            return None
        heads = [node for node in tree.walk(callee) if tree.kind(node) == "Identifier" and is_reference_position(tree, node)]
        return [(node, False) for node in heads] + [(arg, False) for arg in args]
    if kind in ("BinaryExpression", "LogicalExpression"):
        left = tree.child(expr, "left")
        right = tree.child(expr, "right")
        if tree.kind(left) not in _OPERAND_KINDS or tree.kind(right) not in _OPERAND_KINDS:
            return None
        return [(left, False), (right, kind == "LogicalExpression")]
    if kind == "UnaryExpression":
        argument = tree.child(expr, "argument")
        if tree.attr(expr, "operator") == "delete" or tree.kind(argument) not in _OPERAND_KINDS:
            return None
        return [(argument, False)]
    return None


def _candidate(ctx: "PassContext", info: ScopeInfo, binding: Binding) -> Optional[WrapperCandidate]:
    tree = ctx.tree
    if binding.kind not in ("function", "var", "let", "const") or ctx.is_protected(binding.name):
        return None
    if len(binding.declarations) != 1 or binding.writes or not binding.references:
        return None
    ident = binding.declarations[0]
    slot = tree.parent_slot(ident)
    if slot is None or slot[1] != "id":
        return None
    holder = slot[0]
    if tree.kind(holder) == "FunctionDeclaration":
        function = declaration = holder
        if tree.statement_list(holder) is None:
            return None
    elif tree.kind(holder) == "VariableDeclarator":
        function = tree.child(holder, "init")
        declaration = holder
        if tree.kind(function) not in ("FunctionExpression", "ArrowFunctionExpression"):
            return None
        if tree.statement_list(tree.parent(holder)) is None:
            return None
    else:
        return None
    if tree.attr(function, "async") or tree.attr(function, "generator"):
        return None
    param_nodes = tree.children(function, "params")
    if any(tree.kind(param) != "Identifier" for param in param_nodes):
        return None
    params = [tree.attr(param, "name") for param in param_nodes]
    if len(set(params)) != len(params):
        return None
    body = _returned_expression(tree, function)
    if body is None:
        return None
    operands = _operands(tree, body)
    if operands is None:
        return None

    seen: List[str] = []
    conditional: Set[str] = set()
    callee_params: Set[str] = set()
    outer: Dict[str, Optional[Binding]] = {}
    for node in tree.walk(body):
        if tree.kind(node) in FUNCTION_KINDS or tree.kind(node) == "ThisExpression":
            return None
        if tree.kind(node) != "Identifier" or not is_reference_position(tree, node):
            continue
        name = tree.attr(node, "name")
        if name == "arguments":
            return None
        if name in params:
            continue
        target = info.resolve(node)
        if target is binding:
            return None
        if target is not None and contains(tree, function, target.scope.node):
            return None
        outer[name] = target
    for node, is_conditional in operands:
        if tree.kind(node) != "Identifier" or tree.attr(node, "name") not in params:
            continue
        name = tree.attr(node, "name")
        seen.append(name)
        if is_conditional:
            conditional.add(name)
        slot = tree.parent_slot(node)
        if slot is not None and slot[1] == "callee":
            callee_params.add(name)
    if sorted(seen) != sorted(params):
        return None

    for ref in binding.references:
        slot = tree.parent_slot(ref.node)
        if slot is None or tree.kind(slot[0]) != "CallExpression" or slot[1] != "callee":
            return None
        if contains(tree, function, ref.node):
            return None
    return WrapperCandidate(
        binding=binding,
        ident=ident,
        function=function,
        declaration=declaration,
        params=params,
        body=body,
        ordered=seen == params,
        conditional=conditional,
        callee_params=callee_params,
        outer=outer,
    )


def _blocker(tree: "SyntaxTree", info: ScopeInfo, wrapper: WrapperCandidate, call: int) -> Optional[str]:
    args = tree.children(call, "arguments")
    if any(arg is None or tree.kind(arg) == "SpreadElement" for arg in args):
        return "spread argument"
    if len(args) != len(wrapper.params):
        return f"arity mismatch ({len(args)} arguments for {len(wrapper.params)} parameters)"
    by_name = dict(zip(wrapper.params, args))
    if not wrapper.ordered and not all(is_pure(tree, arg) for arg in args):
        return "argument evaluation would be reordered"
    if any(not is_pure(tree, by_name[name]) for name in wrapper.conditional):
        return "impure argument would become conditional"
    if not all(is_pure(tree, arg) for arg in args):
        # outer names are read before the arguments once inlined
        for name, target in wrapper.outer.items():
            if target is None or target.writes:
                return f"impure argument may change {name!r} before the wrapper reads it"
    for name, target in wrapper.outer.items():
        if info.lookup(name, call) is not target:
            return f"{name!r} is shadowed at the call site"
    return None


def _inline(tree: "SyntaxTree", wrapper: WrapperCandidate, call: int) -> None:
    by_name = dict(zip(wrapper.params, tree.children(call, "arguments")))
    copy = tree.copy_subtree(wrapper.body)
    for node in list(tree.walk(copy)):
        if tree.kind(node) != "Identifier" or not is_reference_position(tree, node):
            continue
        name = tree.attr(node, "name")
        if name not in by_name:
            continue
        argument = by_name[name]
        if name in wrapper.callee_params and tree.kind(argument) == "MemberExpression":
            # keep the plain-call receiver: (0, obj.fn)(x)
            tree.detach(argument)
            argument = tree.add("SequenceExpression", expressions=[builders.literal(tree, 0), argument])
        tree.replace(node, argument)
    tree.replace(call, copy)


def _delete(tree: "SyntaxTree", wrapper: WrapperCandidate) -> None:
    if tree.kind(wrapper.declaration) == "FunctionDeclaration":
        tree.remove(wrapper.declaration)
    else:
        tree.remove_declarators([wrapper.declaration])


def _round(ctx: "PassContext") -> int:
    tree = ctx.tree
    info = ctx.scopes()
    found = [candidate for candidate in (_candidate(ctx, info, b) for b in info.bindings()) if candidate]
    bindings = {candidate.binding for candidate in found}
    # a wrapper forwarding to another wrapper waits until the inner one is gone
    active = [item for item in found if not any(target in bindings for target in item.outer.values())]
    inlined = 0
    for wrapper in active:
        for ref in list(wrapper.binding.references):
            call = tree.parent(ref.node)
            if call is None or not tree.is_attached(call):
                continue
            reason = _blocker(tree, info, wrapper, call)
            if reason:
                ctx.skip(f"call to {wrapper.binding.name!r} kept: {reason}")
                continue
            _inline(tree, wrapper, call)
            inlined += 1
    if inlined:
        ctx.count(inlined)

    info = ctx.scopes()
    deleted = 0
    for wrapper in active:
        binding = info.resolve(wrapper.ident)
        if binding is None or binding.references:
            continue
        _delete(tree, wrapper)
        deleted += 1
        LOG.debug("removed wrapper %s", wrapper.binding.name)
    if deleted:
        ctx.count(deleted)
    return inlined + deleted


def run(ctx: "PassContext") -> Dict[str, object]:
    rounds = 0
    per_round: List[int] = []
    while rounds < ctx.options.max_rounds:
        rounds += 1
        changed = _round(ctx)
        per_round.append(changed)
        if not changed:
            break
    ctx.notes[:] = list(dict.fromkeys(ctx.notes))
    return {"rounds": rounds, "rewrites_per_round": per_round}


__all__ = ["WrapperCandidate", "run"]
