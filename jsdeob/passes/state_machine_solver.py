"""Linearise dispatchers whose states are strings or come from a string table.

Two shapes are handled:

* split-order dispatchers: ``var o = "2|0|1".split("|"), i = 0;
  while (true) { switch (o[i++]) { ... } break; }``;
* state machines keyed by non-integer constants, including keys such as
  ``A(0x1f)`` that only become constant once a solved string table is
  consulted.

Integer-keyed machines belong to the control-flow unflattener and are left
alone here.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from ..dispatch import (
    SplitDispatcher,
    StateMachine,
    describe_loop,
    has_integer_cases,
    iter_matches,
    literal_constant,
    match_split_dispatcher,
    match_state_machine,
    rewrite_split_dispatcher,
    rewrite_state_machine,
)
from ..exceptions import AmbiguousMatch
from .string_array_solver import find_solved_tables, table_constant

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..scope import ScopeInfo
    from ..tree import SyntaxTree
    from .base import PassContext
    from .string_array_solver import StringTable

LOG = logging.getLogger(__name__)

Match = Union[SplitDispatcher, StateMachine]


def _matcher(tables: List["StringTable"]):
    def match(tree: "SyntaxTree", info: "ScopeInfo", statement: int) -> Optional[Match]:
        constant_of = table_constant(tree, info, tables) if tables else literal_constant(tree)
        found = match_split_dispatcher(tree, info, statement, constant_of)
        if found is not None:
            return found
        if has_integer_cases(tree, statement):
            return None
        return match_state_machine(tree, info, statement, constant_of)

    return match


def _state_names(tree: "SyntaxTree", found: Match) -> List[str]:
    if isinstance(found, SplitDispatcher):
        return [tree.attr(tree.child(decl, "id"), "name") for decl in found.declarators]
    return [found.binding.name]


def run(ctx: "PassContext") -> Dict[str, object]:
    tree = ctx.tree
    tables = list(ctx.state.string_tables) or find_solved_tables(tree, ctx.scopes())
    limit = ctx.options.max_dispatch_states
    solved: List[Dict[str, Any]] = []
    for statement, found in iter_matches(tree, ctx.scopes, _matcher(tables)):
        label = describe_loop(tree, statement)
        if isinstance(found, AmbiguousMatch):
            ctx.skip(f"{label} left in place: {found}")
            continue
        if len(found.cases) > limit:
            ctx.skip(f"{label} has {len(found.cases)} states (limit {limit})")
            continue
        protected = [name for name in _state_names(tree, found) if ctx.is_protected(name)]
        if protected:
            ctx.skip(f"{label} uses protected state variable {protected[0]!r}")
            continue
        if isinstance(found, SplitDispatcher):
            rewrite_split_dispatcher(tree, found)
            kind = "split"
        else:
            rewrite_state_machine(tree, found)
            kind = "machine"
        ctx.count()
        solved.append({"kind": kind, "states": len(found.cases)})
        LOG.debug("linearised %s (%s, %d states)", label, kind, len(found.cases))
    return {"dispatchers": solved, "tables": len(tables)}


__all__ = ["run"]
