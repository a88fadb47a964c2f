"""Recover rotated string tables and their accessor functions.

Three cooperating pieces are recognised:

* the table: ``var T = ["...", ...]`` or a self-redefining array function
  ``function T() { var a = [...]; T = function () { return a; }; return T(); }``;
* the accessor: ``function A(i) { i = i - K; var v = T[i]; return v; }`` and
  its variants (``i -= K``, inline ``T[i - K]``, a local ``T()`` alias, or a
  self-redefining ``return A = function (i, j) {...}, A(i, j);`` body);
* optional rotation calls ``(function (arr, n) {...})(T, n)`` that reorder
  the table once at load time.

The rotation calls are simulated with the restricted interpreter.  When that
succeeds the literal is rewritten to its rotated order, the rotation calls
are removed, the accessor is reduced to ``return T[i - K]`` and a
:class:`StringTable` is published for the passes that follow.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set, Tuple

from .. import builders
from ..dispatch import ConstantFn
from ..evaluator import Closure, Interpreter, JSThrow, NativeFunction, try_constant
from ..exceptions import AmbiguousMatch, NotClosedForm
from ..queries import FUNCTION_KINDS, contains, mentions_name
from ..scope import Binding, ScopeInfo, is_reference_position
from ..values import UNDEFINED, JSArray, is_number, to_number

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..tree import SyntaxTree
    from .base import PassContext

LOG = logging.getLogger(__name__)

CONSTANT_STEP_BUDGET = 10_000


@dataclass
class StringTable:
    """A solved table: ``accessor(i)`` is ``values[i - offset]``."""

    array_name: str
    accessor_name: str
    offset: int
    values: List[str]
    table_is_function: bool = False
    aliases: List[str] = field(default_factory=list)

    def lookup(self, index: Any) -> Optional[str]:
        if isinstance(index, (JSArray, Closure, NativeFunction)) or index is UNDEFINED:
            return None
        number = to_number(index)
        if isinstance(number, float):
            if math.isnan(number) or not number.is_integer():
                return None
            number = int(number)
        pos = number - self.offset
        if 0 <= pos < len(self.values):
            return self.values[pos]
        return None


@dataclass
class _Candidate:
    name: str
    binding: Binding
    declaration: int
    array: int
    accessor: int
    accessor_binding: Binding
    param: str
    params: List[str]
    offset: int
    canonical: bool
    rotations: List[int]
    is_function: bool


# ----------------------------------------------------------------------
# table shapes
def _string_array(tree: "SyntaxTree", index: Optional[int]) -> bool:
    if tree.kind(index) != "ArrayExpression":
        return False
    items = tree.children(index, "elements")
    return bool(items) and all(
        tree.kind(item) == "Literal" and isinstance(tree.attr(item, "value"), str) for item in items
    )


def _statements(tree: "SyntaxTree", function: int) -> List[int]:
    body = tree.child(function, "body")
    if tree.kind(body) != "BlockStatement":
        return []
    return [stmt for stmt in tree.children(body, "body") if stmt is not None and tree.kind(stmt) != "EmptyStatement"]


def _single_declarator(tree: "SyntaxTree", statement: Optional[int]) -> Optional[int]:
    if tree.kind(statement) != "VariableDeclaration":
        return None
    items = tree.children(statement, "declarations")
    if len(items) != 1 or tree.kind(tree.child(items[0], "id")) != "Identifier":
        return None
    return items[0]


def _is_call_of(tree: "SyntaxTree", index: Optional[int], name: str) -> bool:
    if tree.kind(index) != "CallExpression" or tree.children(index, "arguments"):
        return False
    callee = tree.child(index, "callee")
    return tree.kind(callee) == "Identifier" and tree.attr(callee, "name") == name


def _array_function(tree: "SyntaxTree", function: int) -> Optional[int]:
    """Return the array literal of a self-redefining array function."""

    name = tree.attr(tree.child(function, "id"), "name")
    if tree.children(function, "params"):
        return None
    body = _statements(tree, function)
    if len(body) != 3:
        return None
    declarator = _single_declarator(tree, body[0])
    if declarator is None or not _string_array(tree, tree.child(declarator, "init")):
        return None
    local = tree.attr(tree.child(declarator, "id"), "name")
    redefine = tree.child(body[1], "expression") if tree.kind(body[1]) == "ExpressionStatement" else None
    if tree.kind(redefine) != "AssignmentExpression" or tree.attr(redefine, "operator") != "=":
        return None
    target = tree.child(redefine, "left")
    inner = tree.child(redefine, "right")
    if tree.kind(target) != "Identifier" or tree.attr(target, "name") != name:
        return None
    if tree.kind(inner) not in ("FunctionExpression", "ArrowFunctionExpression") or tree.children(inner, "params"):
        return None
    inner_body = tree.child(inner, "body")
    if tree.kind(inner_body) == "BlockStatement":
        inner_statements = _statements(tree, inner)
        if len(inner_statements) != 1 or tree.kind(inner_statements[0]) != "ReturnStatement":
            return None
        returned = tree.child(inner_statements[0], "argument")
    else:
        returned = inner_body
    if tree.kind(returned) != "Identifier" or tree.attr(returned, "name") != local:
        return None
    if tree.kind(body[2]) != "ReturnStatement" or not _is_call_of(tree, tree.child(body[2], "argument"), name):
        return None
    return tree.child(declarator, "init")


def _table_sites(tree: "SyntaxTree") -> List[Tuple[int, int, int, bool]]:
    """``(declaring identifier, declaration node, array literal, is_function)``."""

    found: List[Tuple[int, int, int, bool]] = []
    for index in tree.walk():
        kind = tree.kind(index)
        if kind == "VariableDeclarator":
            ident = tree.child(index, "id")
            init = tree.child(index, "init")
            if tree.kind(ident) == "Identifier" and _string_array(tree, init):
                found.append((ident, index, init, False))
        elif kind == "FunctionDeclaration" and tree.child(index, "id") is not None:
            array = _array_function(tree, index)
            if array is not None:
                found.append((tree.child(index, "id"), index, array, True))
    return found


def _statement_of(tree: "SyntaxTree", declaration: int) -> int:
    if tree.kind(declaration) == "VariableDeclarator":
        return tree.parent(declaration)
    return declaration


# ----------------------------------------------------------------------
# accessor shapes
class _AccessorReader:
    """Read an accessor body into ``(parameter, offset)``."""

    def __init__(self, tree: "SyntaxTree", info: ScopeInfo, table: Binding, is_function: bool) -> None:
        self.tree = tree
        self.info = info
        self.table = table
        self.is_function = is_function

    def _is_table(self, index: Optional[int]) -> bool:
        return self.tree.kind(index) == "Identifier" and self.info.resolve(index) is self.table

    def array_source(self, index: Optional[int], aliases: Set[str]) -> bool:
        tree = self.tree
        if tree.kind(index) == "Identifier" and tree.attr(index, "name") in aliases:
            return True
        if self.is_function:
            return tree.kind(index) == "CallExpression" and not tree.children(index, "arguments") and self._is_table(
                tree.child(index, "callee")
            )
        return self._is_table(index)

    def _constant(self, index: Optional[int]) -> int:
        ok, value = try_constant(self.tree, index) if index is not None else (False, None)
        if not ok or not is_number(value) or isinstance(value, float) and not value.is_integer():
            raise AmbiguousMatch("accessor offset is not an integer constant")
        return int(value)

    def _index_offset(self, index: Optional[int], param: str) -> Optional[int]:
        tree = self.tree
        if tree.kind(index) == "Identifier" and tree.attr(index, "name") == param:
            return 0
        if tree.kind(index) == "BinaryExpression" and tree.attr(index, "operator") == "-":
            left = tree.child(index, "left")
            if tree.kind(left) == "Identifier" and tree.attr(left, "name") == param:
                return self._constant(tree.child(index, "right"))
        return None

    def element(self, index: Optional[int], param: str, aliases: Set[str]) -> Optional[int]:
        tree = self.tree
        if tree.kind(index) != "MemberExpression" or not tree.attr(index, "computed"):
            return None
        if not self.array_source(tree.child(index, "object"), aliases):
            return None
        return self._index_offset(tree.child(index, "property"), param)

    def _adjustment(self, statement: int, param: str) -> Optional[int]:
        tree = self.tree
        if tree.kind(statement) != "ExpressionStatement":
            return None
        expr = tree.child(statement, "expression")
        if tree.kind(expr) != "AssignmentExpression":
            return None
        target = tree.child(expr, "left")
        if tree.kind(target) != "Identifier" or tree.attr(target, "name") != param:
            return None
        operator = tree.attr(expr, "operator")
        if operator == "-=":
            return self._constant(tree.child(expr, "right"))
        if operator == "=":
            return self._index_offset(tree.child(expr, "right"), param)
        return None

    def direct(self, function: int, aliases: Set[str]) -> Tuple[str, List[str], int, bool]:
        """Return ``(parameter, parameters, offset, canonical)`` or raise."""

        tree = self.tree
        param_nodes = tree.children(function, "params")
        if not param_nodes or any(tree.kind(node) != "Identifier" for node in param_nodes):
            raise AmbiguousMatch("accessor has no simple index parameter")
        params = [tree.attr(node, "name") for node in param_nodes]
        param = params[0]
        statements = _statements(tree, function)
        if not statements and tree.kind(function) == "ArrowFunctionExpression":
            offset = self.element(tree.child(function, "body"), param, aliases)
            if offset is None:
                raise AmbiguousMatch("accessor has extra decoding logic")
            return param, params, offset, False
        if mentions_name(tree, tree.child(function, "body"), params[1:]):
            raise AmbiguousMatch("accessor uses its extra parameters")
        aliases = set(aliases)
        offset = 0
        result: Optional[str] = None
        fetched = False
        for pos, statement in enumerate(statements):
            last = pos == len(statements) - 1
            if not fetched:
                declarator = _single_declarator(tree, statement)
                if declarator is not None:
                    init = tree.child(declarator, "init")
                    name = tree.attr(tree.child(declarator, "id"), "name")
                    if self.array_source(init, aliases):
                        aliases.add(name)
                        continue
                    extra = self.element(init, param, aliases)
                    if extra is not None:
                        offset += extra
                        result = name
                        fetched = True
                        continue
                adjust = self._adjustment(statement, param)
                if adjust is not None:
                    offset += adjust
                    continue
            if last and tree.kind(statement) == "ReturnStatement":
                argument = tree.child(statement, "argument")
                if fetched and tree.kind(argument) == "Identifier" and tree.attr(argument, "name") == result:
                    return param, params, offset, False
                if not fetched:
                    extra = self.element(argument, param, aliases)
                    if extra is not None:
                        canonical = len(statements) == 1 and not aliases
                        return param, params, offset + extra, canonical
            raise AmbiguousMatch("accessor has extra decoding logic")
        raise AmbiguousMatch("accessor does not return a table entry")

    def read(self, function: int, accessor_name: str) -> Tuple[str, List[str], int, bool]:
        tree = self.tree
        statements = _statements(tree, function)
        last = statements[-1] if statements else None
        argument = tree.child(last, "argument") if tree.kind(last) == "ReturnStatement" else None
        if tree.kind(argument) == "SequenceExpression":
            items = tree.children(argument, "expressions")
            if len(items) != 2:
                raise AmbiguousMatch("accessor has extra decoding logic")
            redefine, again = items
            if tree.kind(redefine) != "AssignmentExpression" or tree.attr(redefine, "operator") != "=":
                raise AmbiguousMatch("accessor has extra decoding logic")
            target = tree.child(redefine, "left")
            inner = tree.child(redefine, "right")
            if tree.kind(target) != "Identifier" or tree.attr(target, "name") != accessor_name:
                raise AmbiguousMatch("accessor has extra decoding logic")
            if tree.kind(inner) not in ("FunctionExpression", "ArrowFunctionExpression"):
                raise AmbiguousMatch("accessor has extra decoding logic")
            callee = tree.child(again, "callee") if tree.kind(again) == "CallExpression" else None
            if tree.kind(callee) != "Identifier" or tree.attr(callee, "name") != accessor_name:
                raise AmbiguousMatch("accessor has extra decoding logic")
            aliases: Set[str] = set()
            for statement in statements[:-1]:
                declarator = _single_declarator(tree, statement)
                if declarator is None or not self.array_source(tree.child(declarator, "init"), aliases):
                    raise AmbiguousMatch("accessor has extra decoding logic")
                aliases.add(tree.attr(tree.child(declarator, "id"), "name"))
            param, params, offset, _ = self.direct(inner, aliases)
            return param, params, offset, False
        return self.direct(function, set())


# ----------------------------------------------------------------------
# matching
def _rotation_call(tree: "SyntaxTree", statement: int) -> bool:
    if tree.kind(statement) != "ExpressionStatement":
        return False
    expr = tree.child(statement, "expression")
    if tree.kind(expr) == "UnaryExpression" and tree.attr(expr, "operator") in ("!", "void"):
        expr = tree.child(expr, "argument")
    if tree.kind(expr) != "CallExpression":
        return False
    return tree.kind(tree.child(expr, "callee")) in ("FunctionExpression", "ArrowFunctionExpression")


def _top_statement(tree: "SyntaxTree", node: int, container: int) -> Optional[int]:
    current = node
    for ancestor in tree.ancestors(node):
        if ancestor == container:
            return current
        current = ancestor
    return None


def _accessor_function(tree: "SyntaxTree", statement: int) -> Optional[Tuple[int, int]]:
    """``(function node, declaring identifier)`` for a function-valued statement."""

    if tree.kind(statement) == "FunctionDeclaration":
        return statement, tree.child(statement, "id")
    declarator = _single_declarator(tree, statement)
    if declarator is None:
        return None
    init = tree.child(declarator, "init")
    if tree.kind(init) not in ("FunctionExpression", "ArrowFunctionExpression"):
        return None
    return init, tree.child(declarator, "id")


def _match(tree: "SyntaxTree", info: ScopeInfo, site: Tuple[int, int, int, bool]) -> Optional[_Candidate]:
    ident, declaration, array, is_function = site
    binding = info.resolve(ident)
    if binding is None or len(binding.declarations) != 1:
        return None
    statement = _statement_of(tree, declaration)
    location = tree.statement_list(statement)
    if location is None:
        return None
    container = location[0]

    accessors: Dict[int, Tuple[int, int]] = {}
    rotations: Set[int] = set()
    stray = 0
    for ref in binding.references:
        if is_function and contains(tree, declaration, ref.node):
            continue
        top = _top_statement(tree, ref.node, container)
        if top is None:
            stray += 1
        elif top != statement and _accessor_function(tree, top) is not None:
            accessors[top] = _accessor_function(tree, top)
        elif _rotation_call(tree, top):
            rotations.add(top)
        else:
            stray += 1
    if not is_function and binding.writes:
        stray += 1
    if not accessors:
        return None
    name = binding.name
    if len(accessors) > 1:
        raise AmbiguousMatch(f"string table {name!r} is read by more than one function")
    if stray:
        raise AmbiguousMatch(f"string table {name!r} is used outside its accessor")
    accessor, accessor_ident = accessors.popitem()[1]
    accessor_binding = info.resolve(accessor_ident)
    if accessor_binding is None or len(accessor_binding.declarations) != 1:
        raise AmbiguousMatch(f"accessor of {name!r} is declared more than once")
    accessor_name = accessor_binding.name
    if any(not contains(tree, accessor, ref.node) for ref in accessor_binding.writes):
        raise AmbiguousMatch(f"accessor {accessor_name!r} is reassigned")
    reader = _AccessorReader(tree, info, binding, is_function)
    try:
        param, params, offset, canonical = reader.read(accessor, accessor_name)
    except AmbiguousMatch as exc:
        raise AmbiguousMatch(f"{exc} ({accessor_name!r})") from exc
    siblings = tree.children(container, location[1])
    ordered = sorted(rotations, key=siblings.index)
    return _Candidate(
        name=name,
        binding=binding,
        declaration=declaration,
        array=array,
        accessor=accessor,
        accessor_binding=accessor_binding,
        param=param,
        params=params,
        offset=offset,
        canonical=canonical,
        rotations=ordered,
        is_function=is_function,
    )


# ----------------------------------------------------------------------
# simulation and rewriting
def _literal_values(tree: "SyntaxTree", array: int) -> List[str]:
    return [tree.attr(item, "value") for item in tree.children(array, "elements")]


def _simulate(tree: "SyntaxTree", candidate: _Candidate, budget: int) -> List[str]:
    interpreter = Interpreter(tree, step_budget=budget)
    env = interpreter.globals
    if candidate.is_function:
        env.declare(candidate.name, Closure(candidate.declaration, env, candidate.name))
    else:
        env.declare(candidate.name, interpreter.evaluate(candidate.array))
    accessor_name = candidate.accessor_binding.name
    env.declare(accessor_name, Closure(candidate.accessor, env, accessor_name))
    for statement in candidate.rotations:
        interpreter.evaluate(tree.child(statement, "expression"))
    final = env.get(candidate.name)
    if candidate.is_function:
        final = interpreter.call(final, [])
    if not isinstance(final, JSArray) or not all(isinstance(item, str) for item in final.items):
        raise NotClosedForm("rotation left a non-string table")
    values = list(final.items)
    if len(values) != len(tree.children(candidate.array, "elements")):
        raise NotClosedForm("rotation changed the table size")
    accessor = env.get(accessor_name)
    for pos, expected in enumerate(values):
        produced = interpreter.call(accessor, [pos + candidate.offset])
        if produced != expected:
            raise AmbiguousMatch(f"accessor {accessor_name!r} disagrees with the table at index {pos}")
    return values


def _canonical_accessor(tree: "SyntaxTree", candidate: _Candidate) -> None:
    table = builders.identifier(tree, candidate.name)
    if candidate.is_function:
        table = builders.call(tree, table, [])
    index = builders.identifier(tree, candidate.param)
    if candidate.offset:
        index = tree.add(
            "BinaryExpression",
            {"operator": "-"},
            left=index,
            right=builders.negative_aware_number(tree, candidate.offset),
        )
    element = tree.add("MemberExpression", {"computed": True}, object=table, property=index)
    body = builders.block(tree, [tree.add("ReturnStatement", argument=element)])
    params = [builders.identifier(tree, name) for name in candidate.params]
    tree.set_children(candidate.accessor, "params", params)
    tree.set_child(candidate.accessor, "body", body)


def _apply(tree: "SyntaxTree", candidate: _Candidate, values: List[str]) -> int:
    changes = 0
    if values != _literal_values(tree, candidate.array):
        tree.set_children(candidate.array, "elements", [builders.literal(tree, value) for value in values])
        changes += 1
    for statement in candidate.rotations:
        tree.remove(statement)
        changes += 1
    if not candidate.canonical:
        _canonical_accessor(tree, candidate)
        changes += 1
    return changes


# ----------------------------------------------------------------------
# helpers shared with the state-machine solver and the inliner
def _declared_function(tree: "SyntaxTree", binding: Binding) -> Optional[int]:
    slot = tree.parent_slot(binding.declarations[0])
    if slot is None or slot[1] != "id":
        return None
    statement = slot[0] if tree.kind(slot[0]) == "FunctionDeclaration" else tree.parent(slot[0])
    found = _accessor_function(tree, statement) if statement is not None else None
    if found is None or found[1] != binding.declarations[0]:
        return None
    if any(not contains(tree, found[0], ref.node) for ref in binding.writes):
        return None
    return found[0]


def accessor_bindings(tree: "SyntaxTree", info: ScopeInfo, table: StringTable) -> Dict[Binding, str]:
    """Map the accessor binding and every constant alias of it to its name."""

    roots = [
        binding
        for binding in info.bindings_named(table.accessor_name)
        if len(binding.declarations) == 1 and _declared_function(tree, binding) is not None
    ]
    if len(roots) != 1:
        return {}
    found: Dict[Binding, str] = {roots[0]: roots[0].name}
    changed = True
    while changed:
        changed = False
        for binding in info.bindings():
            if binding in found or not binding.is_constant:
                continue
            slot = tree.parent_slot(binding.declarations[0])
            if slot is None or tree.kind(slot[0]) != "VariableDeclarator" or slot[1] != "id":
                continue
            init = tree.child(slot[0], "init")
            if tree.kind(init) == "Identifier" and info.resolve(init) in found:
                found[binding] = binding.name
                changed = True
    return found


def _lookup_function(table: StringTable) -> NativeFunction:
    def lookup(index: Any = UNDEFINED, *_: Any) -> str:
        value = table.lookup(index)
        if value is None:
            raise NotClosedForm(f"index {index!r} is outside string table {table.array_name!r}")
        return value

    return NativeFunction(table.accessor_name, lookup)


def table_constant(tree: "SyntaxTree", info: ScopeInfo, tables: List[StringTable]) -> ConstantFn:
    """Constant folder that also resolves calls of solved accessors."""

    bound: Dict[Binding, StringTable] = {}
    for table in tables:
        for binding in accessor_bindings(tree, info, table):
            bound[binding] = table

    def constant_of(index: int) -> Tuple[bool, Any]:
        names: Dict[str, StringTable] = {}
        for node in tree.walk(index):
            if tree.kind(node) in FUNCTION_KINDS:
                return False, None
            if tree.kind(node) != "Identifier" or not is_reference_position(tree, node):
                continue
            table = bound.get(info.resolve(node))  # type: ignore[arg-type]
            if table is None:
                continue
            name = tree.attr(node, "name")
            if names.setdefault(name, table) is not table:
                return False, None
        if not names:
            return try_constant(tree, index)
        functions = {name: _lookup_function(table) for name, table in names.items()}
        interpreter = Interpreter(tree, step_budget=CONSTANT_STEP_BUDGET, globals=functions)
        try:
            return True, interpreter.evaluate(index)
        except (NotClosedForm, JSThrow):
            return False, None

    return constant_of


def find_solved_tables(tree: "SyntaxTree", info: ScopeInfo) -> List[StringTable]:
    """Tables whose rotation has already been applied (no rotation call left)."""

    tables: List[StringTable] = []
    for site in _table_sites(tree):
        try:
            candidate = _match(tree, info, site)
        except AmbiguousMatch:
            continue
        if candidate is None or candidate.rotations:
            continue
        tables.append(_table_of(tree, info, candidate, _literal_values(tree, candidate.array)))
    return tables


def _table_of(tree: "SyntaxTree", info: ScopeInfo, candidate: _Candidate, values: List[str]) -> StringTable:
    table = StringTable(
        array_name=candidate.name,
        accessor_name=candidate.accessor_binding.name,
        offset=candidate.offset,
        values=list(values),
        table_is_function=candidate.is_function,
    )
    table.aliases = sorted(list(accessor_bindings(tree, info, table).values())[1:])
    return table


def run(ctx: "PassContext") -> Dict[str, object]:
    tree = ctx.tree
    solved: List[Dict[str, object]] = []
    for site in _table_sites(tree):
        if not tree.is_attached(site[1]):
            continue
        info = ctx.scopes()
        try:
            candidate = _match(tree, info, site)
        except AmbiguousMatch as exc:
            ctx.skip(str(exc))
            continue
        if candidate is None:
            continue
        try:
            values = _simulate(tree, candidate, ctx.options.rotation_step_budget)
        except (NotClosedForm, JSThrow) as exc:
            ctx.skip(f"string table {candidate.name!r} left untouched: rotation is not closed-form ({exc})")
            continue
        except AmbiguousMatch as exc:
            ctx.skip(f"string table {candidate.name!r} left untouched: {exc}")
            continue
        changes = _apply(tree, candidate, values)
        if changes:
            ctx.count(changes)
        table = _table_of(tree, ctx.scopes(), candidate, values)
        ctx.state.string_tables = [
            item for item in ctx.state.string_tables if item.accessor_name != table.accessor_name
        ] + [table]
        solved.append(
            {
                "array": table.array_name,
                "accessor": table.accessor_name,
                "offset": table.offset,
                "strings": len(table.values),
                "rotations": len(candidate.rotations),
            }
        )
        LOG.info("solved string table %s (%d strings)", table.array_name, len(table.values))
    return {"tables": solved}


__all__ = [
    "StringTable",
    "accessor_bindings",
    "find_solved_tables",
    "run",
    "table_constant",
]
