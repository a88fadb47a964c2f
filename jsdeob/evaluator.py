"""Closed-form evaluation of small JavaScript fragments.

Two entry points share one interpreter:

* :func:`evaluate_constant` folds an expression built only from literals
  and operators.  Any identifier is rejected.
* :class:`Interpreter` runs a restricted statement subset (variables,
  loops, ``try``/``catch``, closures and a handful of array/string methods)
  under a step budget.  It is used to simulate string-table rotation code
  without executing anything the analysis cannot see.

Anything outside the supported subset raises
:class:`~jsdeob.exceptions.NotClosedForm`; that exception is never caught by
the simulated ``try``/``catch``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .exceptions import NotClosedForm
from .parser import deep_recursion
from .tree import SyntaxTree
from .values import (
    NAN,
    UNDEFINED,
    JSArray,
    is_number,
    js_add,
    js_arithmetic,
    js_bitwise,
    js_compare,
    loose_equals,
    normalise_number,
    parse_float,
    parse_int,
    strict_equals,
    to_boolean,
    to_int32,
    to_number,
    to_string,
    type_of,
)

LOG = logging.getLogger(__name__)

DEFAULT_STEP_BUDGET = 1_000_000

_ARITHMETIC = frozenset({"-", "*", "/", "%", "**"})
_BITWISE = frozenset({"&", "|", "^", "<<", ">>", ">>>"})
_COMPARE = frozenset({"<", ">", "<=", ">="})


class JSThrow(Exception):
    """A value thrown by simulated code."""

    def __init__(self, value: Any) -> None:
        super().__init__(to_string(value) if not isinstance(value, JSArray) else "array")
        self.value = value


class _Break(Exception):
    def __init__(self, label: Optional[str]) -> None:
        super().__init__(label)
        self.label = label


class _Continue(Exception):
    def __init__(self, label: Optional[str]) -> None:
        super().__init__(label)
        self.label = label


class _Return(Exception):
    def __init__(self, value: Any) -> None:
        super().__init__("return")
        self.value = value


@dataclass(eq=False)
class Environment:
    names: Dict[str, Any] = field(default_factory=dict)
    parent: Optional["Environment"] = None

    def find(self, name: str) -> Optional["Environment"]:
        current: Optional[Environment] = self
        while current is not None:
            if name in current.names:
                return current
            current = current.parent
        return None

    def get(self, name: str) -> Any:
        owner = self.find(name)
        if owner is None:
            raise NotClosedForm(f"free identifier {name!r}")
        return owner.names[name]

    def set(self, name: str, value: Any) -> None:
        owner = self.find(name)
        if owner is None:
            raise NotClosedForm(f"assignment to undeclared {name!r}")
        owner.names[name] = value

    def declare(self, name: str, value: Any = UNDEFINED) -> None:
        self.names[name] = value


@dataclass(eq=False)
class Closure:
    """A simulated function value."""

    node: int
    env: Environment
    name: Optional[str] = None

    def __repr__(self) -> str:
        return f"Closure({self.name or 'anonymous'}@{self.node})"


@dataclass(eq=False)
class NativeFunction:
    name: str
    impl: Callable[..., Any]

    def __repr__(self) -> str:
        return f"NativeFunction({self.name})"


def _native_parse_int(value: Any = UNDEFINED, radix: Any = UNDEFINED, *_: Any) -> Any:
    return parse_int(value, radix)


def _native_parse_float(value: Any = UNDEFINED, *_: Any) -> Any:
    return parse_float(value)


def _native_number(value: Any = 0, *_: Any) -> Any:
    return to_number(value)


def _native_string(value: Any = "", *_: Any) -> Any:
    return to_string(value)


def _native_is_nan(value: Any = UNDEFINED, *_: Any) -> bool:
    number = to_number(value)
    return isinstance(number, float) and math.isnan(number)


def default_globals() -> Dict[str, Any]:
    """Pure global functions simulated code may call."""

    return {
        "undefined": UNDEFINED,
        "NaN": NAN,
        "Infinity": math.inf,
        "parseInt": NativeFunction("parseInt", _native_parse_int),
        "parseFloat": NativeFunction("parseFloat", _native_parse_float),
        "Number": NativeFunction("Number", _native_number),
        "String": NativeFunction("String", _native_string),
        "isNaN": NativeFunction("isNaN", _native_is_nan),
    }


class Interpreter:
    """Step-bounded evaluator for the closed-form subset."""

    def __init__(
        self,
        tree: SyntaxTree,
        *,
        step_budget: int = DEFAULT_STEP_BUDGET,
        globals: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.tree = tree
        self.step_budget = step_budget
        self.steps = 0
        self.globals = Environment(dict(default_globals() if globals is None else globals))

    # ------------------------------------------------------------------
    def _tick(self) -> None:
        self.steps += 1
        if self.steps > self.step_budget:
            raise NotClosedForm(f"step budget of {self.step_budget} exhausted")

    def run_statements(self, statements: List[int], env: Optional[Environment] = None) -> None:
        env = env or self.globals
        with deep_recursion():
            self._hoist(statements, env)
            for stmt in statements:
                self.execute(stmt, env)

    def evaluate(self, index: int, env: Optional[Environment] = None) -> Any:
        with deep_recursion():
            return self.eval(index, env or self.globals)

    def call(self, function: Any, args: List[Any], this: Any = UNDEFINED) -> Any:
        with deep_recursion():
            return self._call(function, args, this)

    # ------------------------------------------------------------------
    # statements
    def _hoist(self, statements: List[int], env: Environment) -> None:
        tree = self.tree
        for index in _hoisted_declarations(tree, statements):
            if tree.kind(index) == "FunctionDeclaration":
                name = tree.attr(tree.child(index, "id"), "name")
                env.declare(name, Closure(index, env, name))
            else:
                for declarator in tree.children(index, "declarations"):
                    ident = tree.child(declarator, "id")
                    if tree.kind(ident) != "Identifier":
                        raise NotClosedForm("destructuring declaration")
                    name = tree.attr(ident, "name")
                    if name not in env.names:
                        env.declare(name)

    def execute(self, index: int, env: Environment) -> None:
        self._tick()
        tree = self.tree
        kind = tree.kind(index)
        if kind == "ExpressionStatement":
            self.eval(tree.child(index, "expression"), env)
        elif kind == "VariableDeclaration":
            lexical = tree.attr(index, "kind") != "var"
            for declarator in tree.children(index, "declarations"):
                ident = tree.child(declarator, "id")
                if tree.kind(ident) != "Identifier":
                    raise NotClosedForm("destructuring declaration")
                name = tree.attr(ident, "name")
                init = tree.child(declarator, "init")
                value = UNDEFINED if init is None else self.eval(init, env)
                if lexical:
                    env.declare(name, value)
                elif init is not None:
                    env.set(name, value)
        elif kind in ("FunctionDeclaration", "EmptyStatement"):
            return
        elif kind == "BlockStatement":
            statements = tree.children(index, "body")
            inner = Environment(parent=env) if _declares_lexical(tree, statements) else env
            for stmt in statements:
                self.execute(stmt, inner)
        elif kind == "IfStatement":
            if to_boolean(self.eval(tree.child(index, "test"), env)):
                self.execute(tree.child(index, "consequent"), env)
            else:
                alternate = tree.child(index, "alternate")
                if alternate is not None:
                    self.execute(alternate, env)
        elif kind == "ReturnStatement":
            argument = tree.child(index, "argument")
            raise _Return(UNDEFINED if argument is None else self.eval(argument, env))
        elif kind == "ThrowStatement":
            raise JSThrow(self.eval(tree.child(index, "argument"), env))
        elif kind in ("BreakStatement", "ContinueStatement"):
            label = tree.child(index, "label")
            if label is not None:
                raise NotClosedForm("labelled jump")
            raise _Break(None) if kind == "BreakStatement" else _Continue(None)
        elif kind in ("WhileStatement", "DoWhileStatement", "ForStatement"):
            self._loop(index, env)
        elif kind == "TryStatement":
            self._try(index, env)
        else:
            raise NotClosedForm(f"unsupported statement {kind}")

    def _loop(self, index: int, env: Environment) -> None:
        tree = self.tree
        kind = tree.kind(index)
        test = tree.child(index, "test")
        body = tree.child(index, "body")
        update = tree.child(index, "update") if kind == "ForStatement" else None
        if kind == "ForStatement":
            init = tree.child(index, "init")
            if init is not None:
                if _declares_lexical(tree, [init]):
                    env = Environment(parent=env)
                if tree.kind(init) == "VariableDeclaration":
                    self.execute(init, env)
                else:
                    self.eval(init, env)
        first = kind == "DoWhileStatement"
        while True:
            self._tick()
            if not first and test is not None and not to_boolean(self.eval(test, env)):
                return
            first = False
            try:
                self.execute(body, env)
            except _Break:
                return
            except _Continue:
                pass
            if update is not None:
                self.eval(update, env)

    def _try(self, index: int, env: Environment) -> None:
        tree = self.tree
        handler = tree.child(index, "handler")
        finalizer = tree.child(index, "finalizer")
        try:
            try:
                self.execute(tree.child(index, "block"), env)
            except JSThrow as thrown:
                if handler is None:
                    raise
                param = tree.child(handler, "param")
                inner = Environment(parent=env)
                if param is not None:
                    if tree.kind(param) != "Identifier":
                        raise NotClosedForm("destructuring catch parameter") from thrown
                    inner.declare(tree.attr(param, "name"), thrown.value)
                self.execute(tree.child(handler, "body"), inner)
        finally:
            if finalizer is not None:
                self.execute(finalizer, env)

    # ------------------------------------------------------------------
    # expressions
    def eval(self, index: int, env: Environment) -> Any:
        self._tick()
        tree = self.tree
        kind = tree.kind(index)
        if kind == "Literal":
            if tree.attr(index, "regex") is not None:
                raise NotClosedForm("regular expression literal")
            value = tree.attr(index, "value")
            return normalise_number(value) if is_number(value) else value
        if kind == "Identifier":
            return env.get(tree.attr(index, "name"))
        if kind == "ArrayExpression":
            items = []
            for item in tree.children(index, "elements"):
                if item is None or tree.kind(item) == "SpreadElement":
                    raise NotClosedForm("array hole or spread")
                items.append(self.eval(item, env))
            return JSArray(items)
        if kind == "UnaryExpression":
            return self._unary(index, env)
        if kind == "BinaryExpression":
            operator = tree.attr(index, "operator")
            left = self.eval(tree.child(index, "left"), env)
            right = self.eval(tree.child(index, "right"), env)
            return binary_operation(operator, left, right)
        if kind == "LogicalExpression":
            operator = tree.attr(index, "operator")
            left = self.eval(tree.child(index, "left"), env)
            if operator == "&&":
                return self.eval(tree.child(index, "right"), env) if to_boolean(left) else left
            if operator == "||":
                return left if to_boolean(left) else self.eval(tree.child(index, "right"), env)
            if left is None or left is UNDEFINED:
                return self.eval(tree.child(index, "right"), env)
            return left
        if kind == "ConditionalExpression":
            if to_boolean(self.eval(tree.child(index, "test"), env)):
                return self.eval(tree.child(index, "consequent"), env)
            return self.eval(tree.child(index, "alternate"), env)
        if kind == "SequenceExpression":
            result: Any = UNDEFINED
            for item in tree.children(index, "expressions"):
                result = self.eval(item, env)
            return result
        if kind == "AssignmentExpression":
            return self._assign(index, env)
        if kind == "UpdateExpression":
            return self._update(index, env)
        if kind == "MemberExpression":
            obj = self.eval(tree.child(index, "object"), env)
            return get_property(obj, self._property_key(index, env))
        if kind == "CallExpression":
            return self._call_expression(index, env)
        if kind in ("FunctionExpression", "ArrowFunctionExpression"):
            if tree.attr(index, "async") or tree.attr(index, "generator"):
                raise NotClosedForm("async or generator function")
            ident = tree.child(index, "id")
            name = tree.attr(ident, "name") if ident is not None else None
            closure = Closure(index, env, name)
            if name is not None:
                closure.env = Environment({name: closure}, env)
            return closure
        raise NotClosedForm(f"unsupported expression {kind}")

    def _property_key(self, index: int, env: Environment) -> Any:
        tree = self.tree
        prop = tree.child(index, "property")
        if tree.attr(index, "computed"):
            return self.eval(prop, env)
        return tree.attr(prop, "name")

    def _unary(self, index: int, env: Environment) -> Any:
        tree = self.tree
        operator = tree.attr(index, "operator")
        argument = tree.child(index, "argument")
        if operator == "typeof":
            if tree.kind(argument) == "Identifier" and env.find(tree.attr(argument, "name")) is None:
                raise NotClosedForm(f"typeof free identifier {tree.attr(argument, 'name')!r}")
            return type_of(self.eval(argument, env))
        value = self.eval(argument, env)
        return unary_operation(operator, value)

    def _assign(self, index: int, env: Environment) -> Any:
        tree = self.tree
        operator = tree.attr(index, "operator")
        target = tree.child(index, "left")
        if tree.kind(target) == "Identifier":
            name = tree.attr(target, "name")
            if operator == "=":
                value = self.eval(tree.child(index, "right"), env)
            else:
                value = binary_operation(operator[:-1], env.get(name), self.eval(tree.child(index, "right"), env))
            env.set(name, value)
            return value
        if tree.kind(target) == "MemberExpression":
            obj = self.eval(tree.child(target, "object"), env)
            key = self._property_key(target, env)
            if operator == "=":
                value = self.eval(tree.child(index, "right"), env)
            else:
                value = binary_operation(operator[:-1], get_property(obj, key), self.eval(tree.child(index, "right"), env))
            set_property(obj, key, value)
            return value
        raise NotClosedForm("destructuring assignment")

    def _update(self, index: int, env: Environment) -> Any:
        tree = self.tree
        target = tree.child(index, "argument")
        delta = 1 if tree.attr(index, "operator") == "++" else -1
        if tree.kind(target) == "Identifier":
            name = tree.attr(target, "name")
            old = to_number(env.get(name))
            new = normalise_number(old + delta)
            env.set(name, new)
        elif tree.kind(target) == "MemberExpression":
            obj = self.eval(tree.child(target, "object"), env)
            key = self._property_key(target, env)
            old = to_number(get_property(obj, key))
            new = normalise_number(old + delta)
            set_property(obj, key, new)
        else:
            raise NotClosedForm("invalid update target")
        return new if tree.attr(index, "prefix") else old

    def _call_expression(self, index: int, env: Environment) -> Any:
        tree = self.tree
        callee = tree.child(index, "callee")
        args: List[Any] = []
        this: Any = UNDEFINED
        if tree.kind(callee) == "MemberExpression":
            this = self.eval(tree.child(callee, "object"), env)
            key = self._property_key(callee, env)
            for arg in tree.children(index, "arguments"):
                args.append(self._argument(arg, env))
            method = builtin_method(this, key)
            if method is not None:
                return method(*args)
            function = get_property(this, key)
        else:
            function = self.eval(callee, env)
            for arg in tree.children(index, "arguments"):
                args.append(self._argument(arg, env))
        return self._call(function, args, this)

    def _argument(self, arg: Optional[int], env: Environment) -> Any:
        if arg is None or self.tree.kind(arg) == "SpreadElement":
            raise NotClosedForm("spread argument")
        return self.eval(arg, env)

    def _call(self, function: Any, args: List[Any], this: Any) -> Any:
        if isinstance(function, NativeFunction):
            return function.impl(*args)
        if not isinstance(function, Closure):
            raise NotClosedForm(f"call of non-function {function!r}")
        tree = self.tree
        node = function.node
        env = Environment(parent=function.env)
        params = tree.children(node, "params")
        for pos, param in enumerate(params):
            if tree.kind(param) != "Identifier":
                raise NotClosedForm("non-simple parameter list")
            env.declare(tree.attr(param, "name"), args[pos] if pos < len(args) else UNDEFINED)
        body = tree.child(node, "body")
        if tree.kind(body) != "BlockStatement":
            return self.eval(body, env)
        if _uses_this_or_arguments(tree, body):
            raise NotClosedForm("function relies on this/arguments")
        statements = [stmt for stmt in tree.children(body, "body") if stmt is not None]
        self._hoist(statements, env)
        try:
            for stmt in statements:
                self.execute(stmt, env)
        except _Return as returned:
            return returned.value
        except (_Break, _Continue) as jump:
            raise NotClosedForm("jump escaped function body") from jump
        return UNDEFINED


def _hoisted_declarations(tree: SyntaxTree, statements: List[int]) -> List[int]:
    found: List[int] = []
    pending = list(reversed(statements))
    while pending:
        index = pending.pop()
        if index is None:
            continue
        kind = tree.kind(index)
        if kind == "FunctionDeclaration":
            found.append(index)
            continue
        if kind == "VariableDeclaration" and tree.attr(index, "kind") == "var":
            found.append(index)
            continue
        if kind in ("FunctionExpression", "ArrowFunctionExpression") or not kind.endswith("Statement") and kind not in (
            "SwitchCase",
            "CatchClause",
        ):
            continue
        children = list(tree.iter_children(index))
        pending.extend(reversed(children))
    return found


def _declares_lexical(tree: SyntaxTree, statements: List[Optional[int]]) -> bool:
    return any(
        tree.kind(stmt) == "VariableDeclaration" and tree.attr(stmt, "kind") in ("let", "const")
        for stmt in statements
        if stmt is not None
    )


def _uses_this_or_arguments(tree: SyntaxTree, body: int) -> bool:
    pending = [body]
    while pending:
        index = pending.pop()
        kind = tree.kind(index)
        if kind == "ThisExpression":
            return True
        if kind == "Identifier" and tree.attr(index, "name") == "arguments":
            return True
        if kind in ("FunctionExpression", "FunctionDeclaration"):
            continue
        pending.extend(tree.iter_children(index))
    return False


def unary_operation(operator: str, value: Any) -> Any:
    if operator == "!":
        return not to_boolean(value)
    if operator == "-":
        number = to_number(value)
        if number == 0 and not isinstance(number, float):
            return -0.0
        return normalise_number(-number)
    if operator == "+":
        return to_number(value)
    if operator == "~":
        return to_int32(~to_int32(value))
    if operator == "void":
        return UNDEFINED
    if operator == "typeof":
        return type_of(value)
    raise NotClosedForm(f"unsupported unary operator {operator}")


def binary_operation(operator: str, left: Any, right: Any) -> Any:
    if operator == "+":
        return js_add(left, right)
    if operator in _ARITHMETIC:
        return js_arithmetic(operator, left, right)
    if operator in _BITWISE:
        return js_bitwise(operator, left, right)
    if operator in _COMPARE:
        return js_compare(operator, left, right)
    if operator == "===":
        return strict_equals(left, right)
    if operator == "!==":
        return not strict_equals(left, right)
    if operator == "==":
        return loose_equals(left, right)
    if operator == "!=":
        return not loose_equals(left, right)
    raise NotClosedForm(f"unsupported binary operator {operator}")


def get_property(obj: Any, key: Any) -> Any:
    if isinstance(obj, JSArray):
        return obj.get(key)
    if isinstance(obj, str):
        if key == "length":
            return len(obj)
        number = to_number(key) if not is_number(key) else key
        if isinstance(number, float) and not number.is_integer():
            raise NotClosedForm("non-integral string index")
        if is_number(number) and not (isinstance(number, float) and math.isnan(number)):
            pos = int(number)
            return obj[pos] if 0 <= pos < len(obj) else UNDEFINED
    raise NotClosedForm(f"property {key!r} of {type_of(obj)}")


def set_property(obj: Any, key: Any, value: Any) -> None:
    if not isinstance(obj, JSArray):
        raise NotClosedForm("property store on non-array")
    number = to_number(key)
    if not is_number(number) or (isinstance(number, float) and not number.is_integer()) or number < 0:
        raise NotClosedForm(f"array store at {key!r}")
    pos = int(number)
    if pos > len(obj.items) + 10_000:
        raise NotClosedForm("sparse array store")
    while len(obj.items) <= pos:
        obj.items.append(UNDEFINED)
    obj.items[pos] = value


def builtin_method(this: Any, key: Any) -> Optional[Callable[..., Any]]:
    """Resolve the pure array/string methods the simulation understands."""

    if isinstance(this, JSArray):
        items = this.items
        if key == "push":
            return lambda *args: (items.extend(args), len(items))[1]
        if key == "shift":
            return lambda *_: items.pop(0) if items else UNDEFINED
        if key == "pop":
            return lambda *_: items.pop() if items else UNDEFINED
        if key == "unshift":
            return lambda *args: (items.__setitem__(slice(0, 0), list(args)), len(items))[1]
        if key == "join":
            return lambda sep=",", *_: to_string(sep).join(
                "" if item is None or item is UNDEFINED else to_string(item) for item in items
            )
        return None
    if isinstance(this, str):
        if key == "split":
            return lambda sep=UNDEFINED, *_: _split(this, sep)
        if key == "charCodeAt":
            return lambda pos=0, *_: _char_code_at(this, pos)
        if key == "charAt":
            return lambda pos=0, *_: _char_at(this, pos)
        if key == "indexOf":
            return lambda needle=UNDEFINED, *_: this.find(to_string(needle))
        if key == "slice":
            return lambda start=0, end=UNDEFINED, *_: _slice(this, start, end)
        return None
    return None


def _split(text: str, separator: Any) -> JSArray:
    if separator is UNDEFINED:
        return JSArray([text])
    sep = to_string(separator)
    if sep == "":
        return JSArray(list(text))
    return JSArray(text.split(sep))


def _char_code_at(text: str, pos: Any) -> Any:
    index = to_int32(pos)
    if 0 <= index < len(text):
        return ord(text[index])
    return NAN


def _char_at(text: str, pos: Any) -> str:
    index = to_int32(pos)
    return text[index] if 0 <= index < len(text) else ""


def _slice(text: str, start: Any, end: Any) -> str:
    size = len(text)
    first = to_int32(start)
    last = size if end is UNDEFINED else to_int32(end)
    if first < 0:
        first = max(size + first, 0)
    if last < 0:
        last = max(size + last, 0)
    return text[first:last]


def evaluate_constant(tree: SyntaxTree, index: int, *, step_budget: int = 10_000) -> Any:
    """Fold a literal-only expression, raising ``NotClosedForm`` otherwise."""

    interpreter = Interpreter(tree, step_budget=step_budget, globals={})
    return interpreter.evaluate(index)


def try_constant(tree: SyntaxTree, index: int) -> tuple[bool, Any]:
    try:
        return True, evaluate_constant(tree, index)
    except (NotClosedForm, JSThrow):
        return False, None


__all__ = [
    "Closure",
    "DEFAULT_STEP_BUDGET",
    "Environment",
    "Interpreter",
    "JSThrow",
    "NativeFunction",
    "binary_operation",
    "builtin_method",
    "default_globals",
    "evaluate_constant",
    "get_property",
    "set_property",
    "try_constant",
    "unary_operation",
]
