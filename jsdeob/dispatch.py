"""Recognise and rewrite dispatcher loops.

Two shapes are understood:

``StateMachine``
    ``var s = K; while (true) { switch (s) { case K: ...; s = K2; break; } }``
    Transitions are assignments of constants (optionally chosen by an
    ``if``/``else`` or a ternary), ``return``/``throw`` ends a path and a
    ``break`` out of the loop (or ``s = EXIT`` for ``while (s !== EXIT)``)
    leaves it.

``SplitDispatcher``
    ``var o = "2|0|1".split("|"), i = 0; while (true) { switch (o[i++]) {
    case "0": ...; continue; } break; }``
    The execution order is the split order string.

Matching never mutates the tree; the ``rewrite_*`` functions apply a
finished match and cannot fail half way.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from . import builders
from .evaluator import try_constant
from .exceptions import AmbiguousMatch
from .flow_graph import EXIT, PlanItem, StateGraph, structure
from .printer import generate
from .queries import (
    declares_hoisted,
    escaping_jumps,
    has_block_scoped_declaration,
    is_terminal,
    is_truthy_constant,
)
from .scope import Binding, ScopeInfo
from .tree import SyntaxTree
from .values import UNDEFINED, JSArray, is_number

LOG = logging.getLogger(__name__)

StateKey = Tuple[str, Any]
ConstantFn = Callable[[int], Tuple[bool, Any]]


def state_key(value: Any) -> Optional[StateKey]:
    """Hashable key with ``===`` semantics; ``None`` for values that never match."""

    if isinstance(value, bool):
        return ("boolean", value)
    if is_number(value):
        if isinstance(value, float) and math.isnan(value):
            return None
        return ("number", value)
    if isinstance(value, str):
        return ("string", value)
    if value is None:
        return ("null", None)
    if value is UNDEFINED:
        return ("undefined", None)
    return None


def literal_constant(tree: SyntaxTree) -> ConstantFn:
    return lambda index: try_constant(tree, index)


@dataclass
class Exit:
    kind: str
    target: Optional[StateKey] = None
    test: Optional[int] = None
    else_target: Optional[StateKey] = None
    prefix: List[int] = field(default_factory=list)
    assignments: List[int] = field(default_factory=list)


@dataclass
class DispatchCase:
    key: StateKey
    node: int
    statements: List[int]
    exit: Exit


@dataclass
class LoopShape:
    statement: int
    loop: int
    switch: int
    label: Optional[str]
    test: Optional[int]
    trailing_break: bool


@dataclass
class StateMachine:
    shape: LoopShape
    binding: Binding
    initial: StateKey
    init_site: int
    exit_key: Optional[StateKey]
    cases: Dict[StateKey, DispatchCase]
    plan: List[PlanItem]

    @property
    def states(self) -> List[StateKey]:
        return list(self.cases)


@dataclass
class SplitDispatcher:
    shape: LoopShape
    order: List[StateKey]
    declarators: List[int]
    cases: Dict[StateKey, DispatchCase]
    sequence: List[StateKey]


def candidate_loops(tree: SyntaxTree) -> List[int]:
    """Loop statements sitting in statement lists, innermost first."""

    found: List[int] = []
    for index in tree.walk():
        if tree.statement_list(index) is None:
            continue
        kind = tree.kind(index)
        if kind == "LabeledStatement":
            kind = tree.kind(tree.child(index, "body"))
        if kind in ("WhileStatement", "ForStatement"):
            found.append(index)
    found.reverse()
    return found


def loop_shape(tree: SyntaxTree, statement: int) -> Optional[LoopShape]:
    label: Optional[str] = None
    loop = statement
    if tree.kind(loop) == "LabeledStatement":
        label = tree.attr(tree.child(loop, "label"), "name")
        loop = tree.child(loop, "body")
    kind = tree.kind(loop)
    if kind == "ForStatement":
        if tree.child(loop, "init") is not None or tree.child(loop, "update") is not None:
            return None
    elif kind != "WhileStatement":
        return None
    body = tree.child(loop, "body")
    if tree.kind(body) == "BlockStatement":
        items = [item for item in tree.children(body, "body") if tree.kind(item) != "EmptyStatement"]
    else:
        items = [body]
    if not items or tree.kind(items[0]) != "SwitchStatement":
        return None
    trailing_break = False
    if len(items) == 2:
        tail = items[1]
        if tree.kind(tail) != "BreakStatement":
            return None
        tail_label = tree.child(tail, "label")
        if tail_label is not None and tree.attr(tail_label, "name") != label:
            return None
        trailing_break = True
    elif len(items) != 1:
        return None
    return LoopShape(
        statement=statement,
        loop=loop,
        switch=items[0],
        label=label,
        test=tree.child(loop, "test"),
        trailing_break=trailing_break,
    )


def has_integer_cases(tree: SyntaxTree, statement: int) -> bool:
    """True when every case label of a dispatcher loop is a literal integer."""

    shape = loop_shape(tree, statement)
    if shape is None:
        return False
    cases = [case for case in tree.children(shape.switch, "cases") if case is not None]
    if not cases:
        return False
    for case in cases:
        test = tree.child(case, "test")
        if test is None:
            return False
        ok, value = try_constant(tree, test)
        if not ok or isinstance(value, bool) or not is_number(value):
            return False
        if isinstance(value, float) and not value.is_integer():
            return False
    return True


def describe_loop(tree: SyntaxTree, statement: int) -> str:
    shape = loop_shape(tree, statement)
    if shape is None:
        return tree.kind(statement) or "loop"
    return "switch (" + generate(tree, tree.child(shape.switch, "discriminant")) + ")"


def _runs_forever(tree: SyntaxTree, shape: LoopShape) -> bool:
    return shape.test is None or is_truthy_constant(tree, shape.test)


def _sibling_statements(tree: SyntaxTree, statement: int, count: int) -> List[int]:
    location = tree.statement_list(statement)
    if location is None:
        return []
    container, role, pos = location
    items = tree.children(container, role)
    return [item for item in items[max(0, pos - count):pos] if item is not None]


def _resolves_to(info: ScopeInfo, ident: Optional[int], binding: Binding) -> bool:
    return ident is not None and info.resolve(ident) is binding


def _single_statement(tree: SyntaxTree, index: Optional[int]) -> Optional[int]:
    if index is None:
        return None
    if tree.kind(index) == "BlockStatement":
        body = [item for item in tree.children(index, "body") if tree.kind(item) != "EmptyStatement"]
        return body[0] if len(body) == 1 else None
    return index


class _CaseReader:
    """Split case bodies into kept statements and a transition."""

    def __init__(
        self,
        tree: SyntaxTree,
        info: ScopeInfo,
        shape: LoopShape,
        constant_of: ConstantFn,
        binding: Optional[Binding] = None,
    ) -> None:
        self.tree = tree
        self.info = info
        self.shape = shape
        self.constant_of = constant_of
        self.binding = binding

    def key_of(self, index: int) -> StateKey:
        ok, value = self.constant_of(index)
        key = state_key(value) if ok else None
        if key is None:
            raise AmbiguousMatch("state value is not a compile-time constant")
        return key

    def body(self, case: int) -> List[int]:
        tree = self.tree
        body = [item for item in tree.children(case, "consequent") if tree.kind(item) != "EmptyStatement"]
        if len(body) == 1 and tree.kind(body[0]) == "BlockStatement":
            inner = [item for item in tree.children(body[0], "body") if tree.kind(item) != "EmptyStatement"]
            if not has_block_scoped_declaration(tree, inner):
                return inner
        return body

    def jump(self, body: List[int], is_last: bool) -> Tuple[str, List[int]]:
        """Return (``next``/``leave``/``terminal``, remaining statements)."""

        tree = self.tree
        label = self.shape.label
        if not body:
            if not is_last:
                raise AmbiguousMatch("case falls through")
            return ("leave" if self.shape.trailing_break else "next"), []
        last = body[-1]
        kind = tree.kind(last)
        if kind in ("BreakStatement", "ContinueStatement"):
            target = tree.child(last, "label")
            target_name = None if target is None else tree.attr(target, "name")
            if target_name is not None and target_name != label:
                raise AmbiguousMatch("jump to an outer label ends a case")
            if kind == "ContinueStatement":
                return "next", body[:-1]
            if target_name is not None or self.shape.trailing_break:
                return "leave", body[:-1]
            return "next", body[:-1]
        if is_terminal(tree, last):
            return "terminal", body
        if not is_last:
            raise AmbiguousMatch("case falls through")
        return ("leave" if self.shape.trailing_break else "next"), body

    def check_jumps(self, statements: Sequence[int]) -> None:
        labels = {self.shape.label} if self.shape.label else set()
        if escaping_jumps(self.tree, statements, labels):
            raise AmbiguousMatch("case body jumps out of the dispatcher")

    # ------------------------------------------------------------------
    # state machine transitions
    def _assignment(self, expr: Optional[int]) -> Optional[int]:
        tree = self.tree
        if tree.kind(expr) != "AssignmentExpression" or tree.attr(expr, "operator") != "=":
            return None
        left = tree.child(expr, "left")
        if self.binding is None or not _resolves_to(self.info, left, self.binding):
            return None
        return expr

    def transition(self, statement: int) -> Optional[Exit]:
        tree = self.tree
        kind = tree.kind(statement)
        if kind == "ExpressionStatement":
            expr = tree.child(statement, "expression")
            prefix: List[int] = []
            if tree.kind(expr) == "SequenceExpression":
                items = tree.children(expr, "expressions")
                prefix = [item for item in items[:-1] if item is not None]
                expr = items[-1]
            assignment = self._assignment(expr)
            if assignment is None:
                return None
            right = tree.child(assignment, "right")
            left = tree.child(assignment, "left")
            if tree.kind(right) == "ConditionalExpression":
                exit_ = Exit(
                    "branch",
                    target=self.key_of(tree.child(right, "consequent")),
                    test=tree.child(right, "test"),
                    else_target=self.key_of(tree.child(right, "alternate")),
                    prefix=prefix,
                    assignments=[left],
                )
            else:
                exit_ = Exit("goto", target=self.key_of(right), prefix=prefix, assignments=[left])
            return exit_
        if kind == "IfStatement" and tree.child(statement, "alternate") is not None:
            arms = []
            for role in ("consequent", "alternate"):
                inner = _single_statement(tree, tree.child(statement, role))
                if tree.kind(inner) != "ExpressionStatement":
                    return None
                assignment = self._assignment(tree.child(inner, "expression"))
                if assignment is None:
                    return None
                arms.append(assignment)
            return Exit(
                "branch",
                target=self.key_of(tree.child(arms[0], "right")),
                test=tree.child(statement, "test"),
                else_target=self.key_of(tree.child(arms[1], "right")),
                assignments=[tree.child(arm, "left") for arm in arms],
            )
        return None


# ----------------------------------------------------------------------
# state machines
def _exit_key(tree: SyntaxTree, info: ScopeInfo, shape: LoopShape, binding: Binding, reader: _CaseReader) -> Optional[StateKey]:
    test = shape.test
    if tree.kind(test) != "BinaryExpression" or tree.attr(test, "operator") not in ("!==", "!="):
        return None
    left = tree.child(test, "left")
    right = tree.child(test, "right")
    if _resolves_to(info, left, binding):
        return reader.key_of(right)
    if _resolves_to(info, right, binding):
        return reader.key_of(left)
    return None


def _initial_state(
    tree: SyntaxTree, info: ScopeInfo, statement: int, binding: Binding, reader: _CaseReader
) -> Tuple[StateKey, int, Optional[int]]:
    """Return (key, site to delete, identifier reference consumed by the site)."""

    previous = _sibling_statements(tree, statement, 1)
    if not previous:
        raise AmbiguousMatch("initial state is not set right before the loop")
    site = previous[0]
    if tree.kind(site) == "VariableDeclaration":
        for declarator in tree.children(site, "declarations"):
            ident = tree.child(declarator, "id")
            if _resolves_to(info, ident, binding) and tree.child(declarator, "init") is not None:
                return reader.key_of(tree.child(declarator, "init")), declarator, None
    if tree.kind(site) == "ExpressionStatement":
        expr = tree.child(site, "expression")
        if tree.kind(expr) == "AssignmentExpression" and tree.attr(expr, "operator") == "=":
            left = tree.child(expr, "left")
            if _resolves_to(info, left, binding):
                return reader.key_of(tree.child(expr, "right")), site, left
    raise AmbiguousMatch("initial state is not set right before the loop")


def match_state_machine(
    tree: SyntaxTree,
    info: ScopeInfo,
    statement: int,
    constant_of: Optional[ConstantFn] = None,
) -> Optional[StateMachine]:
    """Return a match, ``None`` when the loop is not a state machine at all.

    :class:`AmbiguousMatch` is raised for dispatchers whose transitions
    cannot be proven.
    """

    shape = loop_shape(tree, statement)
    if shape is None:
        return None
    discriminant = tree.child(shape.switch, "discriminant")
    if tree.kind(discriminant) != "Identifier":
        return None
    binding = info.resolve(discriminant)
    if binding is None:
        return None
    reader = _CaseReader(tree, info, shape, constant_of or literal_constant(tree), binding)
    accounted = {discriminant}
    exit_key: Optional[StateKey] = None
    if not _runs_forever(tree, shape):
        exit_key = _exit_key(tree, info, shape, binding, reader)
        if exit_key is None:
            return None
        accounted.update(node for node in tree.walk(shape.test) if tree.kind(node) == "Identifier")

    cases: Dict[StateKey, DispatchCase] = {}
    case_nodes = [case for case in tree.children(shape.switch, "cases") if case is not None]
    for pos, case in enumerate(case_nodes):
        test = tree.child(case, "test")
        if test is None:
            raise AmbiguousMatch("dispatcher has a default case")
        key = reader.key_of(test)
        if key in cases:
            raise AmbiguousMatch(f"duplicate case {key[1]!r}")
        jump, body = reader.jump(reader.body(case), pos == len(case_nodes) - 1)
        if jump == "terminal":
            exit_ = Exit("terminal")
            statements = body
        elif jump == "leave":
            exit_ = Exit("leave")
            statements = body
        else:
            if not body:
                raise AmbiguousMatch(f"case {key[1]!r} has no state transition")
            found = reader.transition(body[-1])
            if found is None:
                raise AmbiguousMatch(f"case {key[1]!r} has no state transition")
            exit_ = found
            statements = body[:-1]
        reader.check_jumps(statements)
        accounted.update(exit_.assignments)
        cases[key] = DispatchCase(key=key, node=case, statements=statements, exit=exit_)

    initial, init_site, init_ref = _initial_state(tree, info, statement, binding, reader)
    if init_ref is not None:
        accounted.add(init_ref)
    stray = [ref.node for ref in binding.references if ref.node not in accounted]
    if stray:
        raise AmbiguousMatch(f"state variable {binding.name!r} is used outside the dispatcher")

    graph = StateGraph(entry=initial)
    if exit_key is not None and initial == exit_key:
        raise AmbiguousMatch("loop body never runs")

    def target(key: Optional[StateKey]) -> Any:
        if key is not None and key == exit_key:
            return EXIT
        if key not in cases:
            raise AmbiguousMatch(f"transition to unknown state {key!r}")
        return key

    for key, case in cases.items():
        exit_ = case.exit
        if exit_.kind == "goto":
            graph.add(key, [target(exit_.target)])
        elif exit_.kind == "branch":
            graph.add(key, [target(exit_.target), target(exit_.else_target)])
        elif exit_.kind == "leave":
            graph.add(key, [EXIT])
        else:
            graph.add(key, [])
    if initial not in cases:
        raise AmbiguousMatch("initial state has no case")
    plan = structure(graph)
    emitted = set(_planned_states(plan))
    _check_dropped(tree, [case for key, case in cases.items() if key not in emitted])
    return StateMachine(
        shape=shape,
        binding=binding,
        initial=initial,
        init_site=init_site,
        exit_key=exit_key,
        cases=cases,
        plan=plan,
    )


# ----------------------------------------------------------------------
# split-order dispatchers
def _find_declarator(tree: SyntaxTree, info: ScopeInfo, statements: List[int], binding: Binding) -> Optional[int]:
    for statement in statements:
        if tree.kind(statement) != "VariableDeclaration":
            continue
        for declarator in tree.children(statement, "declarations"):
            if _resolves_to(info, tree.child(declarator, "id"), binding):
                return declarator
    return None


def match_split_dispatcher(
    tree: SyntaxTree,
    info: ScopeInfo,
    statement: int,
    constant_of: Optional[ConstantFn] = None,
) -> Optional[SplitDispatcher]:
    shape = loop_shape(tree, statement)
    if shape is None or not _runs_forever(tree, shape):
        return None
    discriminant = tree.child(shape.switch, "discriminant")
    if tree.kind(discriminant) != "MemberExpression" or not tree.attr(discriminant, "computed"):
        return None
    order_ident = tree.child(discriminant, "object")
    update = tree.child(discriminant, "property")
    if tree.kind(order_ident) != "Identifier" or tree.kind(update) != "UpdateExpression":
        return None
    if tree.attr(update, "operator") != "++" or tree.attr(update, "prefix"):
        return None
    counter_ident = tree.child(update, "argument")
    if tree.kind(counter_ident) != "Identifier":
        return None
    order_binding = info.resolve(order_ident)
    counter_binding = info.resolve(counter_ident)
    if order_binding is None or counter_binding is None or order_binding is counter_binding:
        return None

    constant_of = constant_of or literal_constant(tree)
    reader = _CaseReader(tree, info, shape, constant_of)
    previous = _sibling_statements(tree, statement, 2)
    order_decl = _find_declarator(tree, info, previous, order_binding)
    counter_decl = _find_declarator(tree, info, previous, counter_binding)
    if order_decl is None or counter_decl is None:
        raise AmbiguousMatch("dispatch order is not declared right before the loop")
    order_init = tree.child(order_decl, "init")
    counter_init = tree.child(counter_decl, "init")
    if order_init is None or counter_init is None:
        raise AmbiguousMatch("dispatch order is not initialised")
    ok, order_value = constant_of(order_init)
    if not ok or not isinstance(order_value, JSArray):
        raise AmbiguousMatch("dispatch order is not a constant array")
    ok, start = constant_of(counter_init)
    if not ok or not is_number(start) or isinstance(start, float) and not start.is_integer() or start < 0:
        raise AmbiguousMatch("dispatch counter does not start at a constant index")
    order: List[StateKey] = []
    for item in order_value.items:
        key = state_key(item)
        if key is None:
            raise AmbiguousMatch("dispatch order holds a non-constant entry")
        order.append(key)

    if {ref.node for ref in order_binding.references} != {order_ident}:
        raise AmbiguousMatch("dispatch order is used outside the dispatcher")
    if {ref.node for ref in counter_binding.references} != {counter_ident}:
        raise AmbiguousMatch("dispatch counter is used outside the dispatcher")

    cases: Dict[StateKey, DispatchCase] = {}
    case_nodes = [case for case in tree.children(shape.switch, "cases") if case is not None]
    for pos, case in enumerate(case_nodes):
        test = tree.child(case, "test")
        if test is None:
            raise AmbiguousMatch("dispatcher has a default case")
        key = reader.key_of(test)
        if key in cases:
            raise AmbiguousMatch(f"duplicate case {key[1]!r}")
        jump, body = reader.jump(reader.body(case), pos == len(case_nodes) - 1)
        reader.check_jumps(body if jump != "terminal" else body[:-1])
        cases[key] = DispatchCase(key=key, node=case, statements=body, exit=Exit(jump))

    sequence: List[StateKey] = []
    finished = False
    for key in order[int(start):]:
        if finished:
            raise AmbiguousMatch("dispatch order continues after the dispatcher ends")
        case = cases.get(key)
        if case is None:
            if not shape.trailing_break:
                raise AmbiguousMatch(f"no case for {key[1]!r}")
            finished = True
            continue
        if key in sequence:
            raise AmbiguousMatch(f"case {key[1]!r} runs more than once")
        sequence.append(key)
        if case.exit.kind in ("terminal", "leave"):
            finished = True
    if not finished and not shape.trailing_break:
        raise AmbiguousMatch("dispatch order runs out inside an endless loop")
    _check_dropped(tree, [case for key, case in cases.items() if key not in sequence])
    return SplitDispatcher(
        shape=shape,
        order=order,
        declarators=[order_decl, counter_decl],
        cases=cases,
        sequence=sequence,
    )


def _planned_states(items: Optional[List[PlanItem]]) -> Iterator[StateKey]:
    for item in items or []:
        yield item.state
        yield from _planned_states(item.then_items)
        yield from _planned_states(item.else_items)


def _check_dropped(tree: SyntaxTree, cases: Sequence[DispatchCase]) -> None:
    for case in cases:
        if declares_hoisted(tree, tree.children(case.node, "consequent")):
            raise AmbiguousMatch(f"unreachable case {case.key[1]!r} declares hoisted names")


# ----------------------------------------------------------------------
# rewriting
def _finish(tree: SyntaxTree, shape: LoopShape, statements: List[int]) -> int:
    if has_block_scoped_declaration(tree, statements):
        statements = [builders.block(tree, statements)]
    tree.splice(shape.statement, statements)
    return len(statements)


def _detached(tree: SyntaxTree, nodes: Sequence[int]) -> List[int]:
    return [tree.detach(node) for node in list(nodes)]


def rewrite_state_machine(tree: SyntaxTree, machine: StateMachine) -> None:
    def build(items: Optional[List[PlanItem]]) -> List[int]:
        out: List[int] = []
        for item in items or []:
            case = machine.cases[item.state]
            out.extend(_detached(tree, case.statements))
            exit_ = case.exit
            for expr in _detached(tree, exit_.prefix):
                out.append(builders.expression_statement(tree, expr))
            if not item.is_branch:
                continue
            then_body = build(item.then_items)
            else_body = build(item.else_items)
            test = tree.detach(exit_.test)
            if not then_body and not else_body:
                out.append(builders.expression_statement(tree, test))
            elif not then_body:
                out.append(builders.if_statement(tree, builders.unary(tree, "!", test), else_body))
            else:
                out.append(builders.if_statement(tree, test, then_body, else_body))
        return out

    statements = build(machine.plan)
    site = machine.init_site
    if tree.kind(site) == "VariableDeclarator":
        tree.remove_declarators([site])
    else:
        tree.remove(site)
    _finish(tree, machine.shape, statements)


def rewrite_split_dispatcher(tree: SyntaxTree, dispatcher: SplitDispatcher) -> None:
    statements: List[int] = []
    for key in dispatcher.sequence:
        statements.extend(_detached(tree, dispatcher.cases[key].statements))
    tree.remove_declarators(dispatcher.declarators)
    _finish(tree, dispatcher.shape, statements)


def iter_matches(
    tree: SyntaxTree,
    info_factory: Callable[[], ScopeInfo],
    matcher: Callable[[SyntaxTree, ScopeInfo, int], Any],
) -> Iterator[Tuple[int, Any]]:
    """Yield ``(statement, match or AmbiguousMatch)`` for every candidate loop.

    Scope information is rebuilt lazily after the caller rewrites a match.
    """

    info = info_factory()
    pending = candidate_loops(tree)
    for statement in pending:
        if not tree.is_attached(statement):
            continue
        try:
            found = matcher(tree, info, statement)
        except AmbiguousMatch as exc:
            yield statement, exc
            continue
        if found is None:
            continue
        yield statement, found
        info = info_factory()


__all__ = [
    "ConstantFn",
    "DispatchCase",
    "Exit",
    "LoopShape",
    "SplitDispatcher",
    "StateKey",
    "StateMachine",
    "candidate_loops",
    "describe_loop",
    "has_integer_cases",
    "iter_matches",
    "literal_constant",
    "loop_shape",
    "match_split_dispatcher",
    "match_state_machine",
    "rewrite_split_dispatcher",
    "rewrite_state_machine",
    "state_key",
]
