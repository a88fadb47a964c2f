"""Replace integer-keyed ``while``/``switch`` dispatchers with straight-line code."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..dispatch import (
    StateMachine,
    describe_loop,
    has_integer_cases,
    iter_matches,
    match_state_machine,
    rewrite_state_machine,
)
from ..exceptions import AmbiguousMatch

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..scope import ScopeInfo
    from ..tree import SyntaxTree
    from .base import PassContext

LOG = logging.getLogger(__name__)


def _integer_machine(tree: "SyntaxTree", info: "ScopeInfo", statement: int) -> Optional[StateMachine]:
    if not has_integer_cases(tree, statement):
        return None
    return match_state_machine(tree, info, statement)


def run(ctx: "PassContext") -> Dict[str, object]:
    tree = ctx.tree
    limit = ctx.options.max_dispatch_states
    flattened: List[Dict[str, Any]] = []
    for statement, found in iter_matches(tree, ctx.scopes, _integer_machine):
        if isinstance(found, AmbiguousMatch):
            ctx.skip(f"{describe_loop(tree, statement)} left in place: {found}")
            continue
        label = describe_loop(tree, statement)
        if len(found.cases) > limit:
            ctx.skip(f"{label} has {len(found.cases)} states (limit {limit})")
            continue
        if ctx.is_protected(found.binding.name):
            ctx.skip(f"{label} uses protected state variable {found.binding.name!r}")
            continue
        rewrite_state_machine(tree, found)
        ctx.count()
        flattened.append({"state": found.binding.name, "states": len(found.cases)})
        LOG.debug("unflattened %s (%d states)", label, len(found.cases))
    return {"loops": flattened, "skipped": len(ctx.notes)}


__all__ = ["run"]
