"""State transition graphs recovered from dispatcher loops.

A :class:`StateGraph` maps every state to an ordered successor list:

* no successors  -> the state ends in ``return``/``throw``;
* one successor  -> an unconditional transition;
* two successors -> a conditional transition (``then`` first).

:data:`EXIT` stands for "control leaves the dispatcher loop".  Structuring
turns an acyclic graph into a plan of nested branches that merge at their
immediate post-dominator; anything that would need a state emitted twice is
rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Hashable, List, Optional

from .exceptions import AmbiguousMatch


class _ExitState:
    def __repr__(self) -> str:
        return "EXIT"


EXIT = _ExitState()


@dataclass
class PlanItem:
    """Emit the body of ``state``; ``branch`` holds the arms of a conditional exit."""

    state: Hashable
    then_items: Optional[List["PlanItem"]] = None
    else_items: Optional[List["PlanItem"]] = None

    @property
    def is_branch(self) -> bool:
        return self.then_items is not None


@dataclass
class StateGraph:
    entry: Hashable
    successors: Dict[Hashable, List[Any]] = field(default_factory=dict)

    def add(self, state: Hashable, targets: List[Any]) -> None:
        self.successors[state] = list(targets)

    def targets(self, state: Any) -> List[Any]:
        if state is EXIT:
            return []
        return self.successors.get(state, [])

    def reachable(self) -> List[Hashable]:
        order: List[Hashable] = []
        seen = set()
        pending = [self.entry]
        while pending:
            state = pending.pop()
            if state is EXIT or state in seen:
                continue
            seen.add(state)
            order.append(state)
            if state not in self.successors:
                raise AmbiguousMatch(f"transition to unknown state {state!r}")
            pending.extend(reversed(self.successors[state]))
        return order

    def find_cycle(self) -> Optional[List[Hashable]]:
        """Return one cycle reachable from the entry, or ``None``."""

        colour: Dict[Hashable, int] = {}
        path: List[Hashable] = []

        def visit(state: Hashable) -> Optional[List[Hashable]]:
            colour[state] = 1
            path.append(state)
            for target in self.targets(state):
                if target is EXIT:
                    continue
                mark = colour.get(target, 0)
                if mark == 1:
                    return path[path.index(target):] + [target]
                if mark == 0:
                    found = visit(target)
                    if found:
                        return found
            path.pop()
            colour[state] = 2
            return None

        return visit(self.entry)

    def _postorder(self) -> List[Hashable]:
        order: List[Hashable] = []
        seen = set()

        def visit(state: Hashable) -> None:
            seen.add(state)
            for target in self.targets(state):
                if target is not EXIT and target not in seen:
                    visit(target)
            order.append(state)

        visit(self.entry)
        return order

    def post_dominators(self) -> Dict[Any, FrozenSet[Any]]:
        """Post-dominator sets for an acyclic graph; terminal states flow into ``EXIT``."""

        result: Dict[Any, FrozenSet[Any]] = {EXIT: frozenset({EXIT})}
        for state in self._postorder():
            targets = self.targets(state) or [EXIT]
            common: Optional[FrozenSet[Any]] = None
            for target in targets:
                sets = result[target]
                common = sets if common is None else common & sets
            result[state] = frozenset({state}) | (common or frozenset())
        return result

    def immediate_post_dominators(self) -> Dict[Any, Any]:
        sets = self.post_dominators()
        result: Dict[Any, Any] = {}
        for state, members in sets.items():
            if state is EXIT:
                continue
            strict = [item for item in members if item is not state and item != state]
            # post-dominator sets are totally ordered; the nearest one is the largest
            result[state] = max(strict, key=lambda item: len(sets[item]))
        return result


def structure(graph: StateGraph) -> List[PlanItem]:
    """Turn ``graph`` into an emission plan or raise :class:`AmbiguousMatch`."""

    graph.reachable()
    cycle = graph.find_cycle()
    if cycle:
        raise AmbiguousMatch("state graph contains a cycle: " + " -> ".join(repr(item) for item in cycle))
    ipdom = graph.immediate_post_dominators()
    emitted = set()

    def emit(state: Any, stop: Any) -> List[PlanItem]:
        items: List[PlanItem] = []
        while state is not EXIT and not (stop is not EXIT and state == stop):
            if state in emitted:
                raise AmbiguousMatch(f"state {state!r} is reachable on more than one path")
            emitted.add(state)
            targets = graph.targets(state)
            if not targets:
                items.append(PlanItem(state))
                break
            if len(targets) == 1:
                items.append(PlanItem(state))
                state = targets[0]
                continue
            merge = ipdom[state]
            then_items = emit(targets[0], merge)
            else_items = emit(targets[1], merge)
            items.append(PlanItem(state, then_items, else_items))
            state = merge
        return items

    return emit(graph.entry, EXIT)


__all__ = ["EXIT", "PlanItem", "StateGraph", "structure"]
