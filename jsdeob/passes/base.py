"""Shared pass contract.

Every pass module exposes ``run(ctx: PassContext) -> Dict[str, object]``.
The driver wraps each one in a :class:`PassSpec` that clones the incoming
tree, runs the module, and converts the context into a :class:`PassResult`.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from ..exceptions import PatternNotFound
from ..options import PipelineOptions
from ..scope import ScopeInfo, analyze
from ..tree import SyntaxTree

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .string_array_solver import StringTable

LOG = logging.getLogger(__name__)


class FailurePolicy(enum.Enum):
    """What the driver does when a pass finds nothing to rewrite."""

    BEST_EFFORT = "best_effort"
    MANDATORY = "mandatory"


@dataclass
class PipelineState:
    """Facts one pass hands to later ones, keyed by binding names."""

    string_tables: List["StringTable"] = field(default_factory=list)


@dataclass
class PassContext:
    """Explicit state threaded through a single pass."""

    name: str
    tree: SyntaxTree
    options: PipelineOptions
    state: PipelineState
    rewrites: int = 0
    notes: List[str] = field(default_factory=list)
    details: Dict[str, object] = field(default_factory=dict)
    _scopes: Optional[ScopeInfo] = None

    @property
    def matched(self) -> bool:
        return self.rewrites > 0

    @property
    def partial(self) -> bool:
        return bool(self.notes)

    def count(self, amount: int = 1) -> None:
        self.rewrites += amount
        self._scopes = None

    def skip(self, message: str) -> None:
        """Record an occurrence that was deliberately left untouched."""

        LOG.debug("%s: %s", self.name, message)
        self.notes.append(message)

    def scopes(self) -> ScopeInfo:
        if self._scopes is None:
            self._scopes = analyze(self.tree)
        return self._scopes

    def is_protected(self, name: Optional[str]) -> bool:
        return self.options.is_protected(name)


@dataclass
class PassResult:
    name: str
    tree: SyntaxTree
    rewrites: int
    matched: bool
    partial: bool = False
    notes: List[str] = field(default_factory=list)
    details: Dict[str, object] = field(default_factory=dict)
    failure: Optional[PatternNotFound] = None


PassFn = Callable[[PassContext], Dict[str, object]]


@dataclass(frozen=True)
class PassSpec:
    name: str
    group: int
    order: int
    run: PassFn
    pattern: str
    policy: FailurePolicy = FailurePolicy.BEST_EFFORT

    def apply(self, tree: SyntaxTree, options: PipelineOptions, state: PipelineState) -> PassResult:
        """Run the pass on a private copy of ``tree``."""

        ctx = PassContext(name=self.name, tree=tree.clone(), options=options, state=state)
        details = self.run(ctx) or {}
        ctx.details.update(details)
        failure = None if ctx.matched else PatternNotFound(self.name, f"no {self.pattern} found")
        return PassResult(
            name=self.name,
            tree=ctx.tree,
            rewrites=ctx.rewrites,
            matched=ctx.matched,
            partial=ctx.partial,
            notes=list(ctx.notes),
            details=dict(ctx.details),
            failure=failure,
        )


__all__ = [
    "FailurePolicy",
    "PassContext",
    "PassFn",
    "PassResult",
    "PassSpec",
    "PipelineState",
]
