"""Replace accessor calls with the strings they return, then drop dead tables."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Optional

from .. import builders
from ..evaluator import try_constant
from ..queries import contains, is_pure
from ..scope import Binding, ScopeInfo
from .string_array_solver import StringTable, accessor_bindings, find_solved_tables

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..tree import SyntaxTree
    from .base import PassContext

LOG = logging.getLogger(__name__)


def _holder(tree: "SyntaxTree", binding: Binding) -> Optional[int]:
    """The FunctionDeclaration or VariableDeclarator that declares ``binding``."""

    if len(binding.declarations) != 1:
        return None
    slot = tree.parent_slot(binding.declarations[0])
    if slot is None or slot[1] != "id":
        return None
    if tree.kind(slot[0]) in ("FunctionDeclaration", "VariableDeclarator"):
        return slot[0]
    return None


def _bound(tree: "SyntaxTree", info: ScopeInfo, tables: List[StringTable]) -> Dict[Binding, StringTable]:
    found: Dict[Binding, StringTable] = {}
    for table in tables:
        for binding in accessor_bindings(tree, info, table):
            found[binding] = table
    return found


def _replace_calls(ctx: "PassContext", tables: List[StringTable]) -> int:
    tree = ctx.tree
    info = ctx.scopes()
    bound = _bound(tree, info, tables)
    replaced = 0
    # reversed pre-order handles nested calls from the inside out
    for call in reversed(tree.find("CallExpression")):
        if not tree.is_attached(call):
            continue
        callee = tree.child(call, "callee")
        if tree.kind(callee) != "Identifier":
            continue
        binding = info.resolve(callee)
        table = bound.get(binding)  # type: ignore[arg-type]
        if table is None:
            continue
        holder = _holder(tree, binding)
        if holder is not None and contains(tree, holder, call):
            continue
        name = tree.attr(callee, "name")
        args = tree.children(call, "arguments")
        if not args or args[0] is None or tree.kind(args[0]) == "SpreadElement":
            ctx.skip(f"call to {name!r} kept: no index argument")
            continue
        if not all(arg is not None and is_pure(tree, arg) for arg in args[1:]):
            ctx.skip(f"call to {name!r} kept: impure extra argument")
            continue
        ok, index = try_constant(tree, args[0])
        if not ok:
            ctx.skip(f"call to {name!r} kept: index is not constant")
            continue
        value = table.lookup(index)
        if value is None:
            ctx.skip(f"call to {name!r} kept: index {index!r} is outside the table")
            continue
        tree.replace(call, builders.literal(tree, value))
        replaced += 1
    if replaced:
        ctx.count(replaced)
    return replaced


def _only_inside(binding: Binding, tree: "SyntaxTree", holder: int) -> bool:
    return all(contains(tree, holder, ref.node) for ref in binding.references)


def _delete(tree: "SyntaxTree", holder: int) -> None:
    if tree.kind(holder) == "FunctionDeclaration":
        tree.remove(holder)
    else:
        tree.remove_declarators([holder])


def _remove_dead(ctx: "PassContext", table: StringTable) -> List[str]:
    """Delete unreferenced aliases, then the accessor, then the table itself."""

    tree = ctx.tree
    removed: List[str] = []
    changed = True
    while changed:
        changed = False
        info = ctx.scopes()
        for binding in accessor_bindings(tree, info, table):
            holder = _holder(tree, binding)
            if holder is None or ctx.is_protected(binding.name):
                continue
            if not _only_inside(binding, tree, holder):
                continue
            if tree.statement_list(tree.parent(holder) if tree.kind(holder) == "VariableDeclarator" else holder) is None:
                continue
            _delete(tree, holder)
            ctx.count()
            removed.append(binding.name)
            changed = True
            break
    if table.accessor_name not in removed or ctx.is_protected(table.array_name):
        return removed
    info = ctx.scopes()
    for binding in info.bindings_named(table.array_name):
        holder = _holder(tree, binding)
        if holder is None or not _only_inside(binding, tree, holder):
            continue
        if tree.kind(holder) == "VariableDeclarator" and tree.kind(tree.child(holder, "init")) != "ArrayExpression":
            continue
        _delete(tree, holder)
        ctx.count()
        removed.append(binding.name)
        break
    return removed


def run(ctx: "PassContext") -> Dict[str, object]:
    tree = ctx.tree
    tables = list(ctx.state.string_tables) or find_solved_tables(tree, ctx.scopes())
    if not tables:
        return {"replaced": 0, "removed": []}
    replaced = 0
    for _ in range(ctx.options.max_rounds):
        changed = _replace_calls(ctx, tables)
        replaced += changed
        if not changed:
            break
    removed: List[str] = []
    for table in tables:
        removed.extend(_remove_dead(ctx, table))
    ctx.notes[:] = list(dict.fromkeys(ctx.notes))
    if replaced:
        LOG.info("inlined %d string table lookups", replaced)
    return {"replaced": replaced, "removed": removed}


__all__ = ["run"]
