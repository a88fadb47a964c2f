import math

import pytest

from jsdeob.evaluator import Interpreter, JSThrow, NativeFunction, evaluate_constant, try_constant
from jsdeob.exceptions import NotClosedForm
from jsdeob.parser import parse
from jsdeob.values import UNDEFINED, JSArray


def _expression(source):
    tree = parse(source)
    statement = tree.children(tree.root, "body")[0]
    return tree, tree.child(statement, "expression")


def _run(source, **kwargs):
    tree = parse(source)
    interpreter = Interpreter(tree, **kwargs)
    interpreter.run_statements(tree.children(tree.root, "body"))
    return interpreter


@pytest.mark.parametrize(
    "source, expected",
    [
        ("1 + 2 * 3", 7),
        ("'a' + 1", "a1"),
        ("'5' * '2'", 10),
        ("7 >>> 1", 3),
        ("-1 >>> 0", 4294967295),
        ("1 << 31", -2147483648),
        ("0x10 | 1", 17),
        ("typeof 'x'", "string"),
        ("!0", True),
        ("!![]", True),
        ("[1, 2].length", 2),
        ("'abc'.charCodeAt(1)", 98),
        ("'abc'[2]", "c"),
        ("1 / 2", 0.5),
        ("'1' == 1", True),
        ("'1' === 1", False),
        ("void 0", UNDEFINED),
    ],
)
def test_constant_folding(source, expected):
    tree, index = _expression(source)

    assert evaluate_constant(tree, index) == expected


def test_split_produces_an_array():
    tree, index = _expression("'b|a|c'.split('|')")

    value = evaluate_constant(tree, index)

    assert isinstance(value, JSArray)
    assert value.items == ["b", "a", "c"]


def test_try_constant_rejects_free_identifiers():
    tree, index = _expression("x + 1")

    assert try_constant(tree, index) == (False, None)


def test_try_constant_rejects_global_functions():
    tree, index = _expression("parseInt('12')")

    assert try_constant(tree, index) == (False, None)


def test_interpreter_provides_pure_globals():
    tree, index = _expression("parseInt('0x1f') + parseFloat('2.5px')")

    assert Interpreter(tree).evaluate(index) == 33.5


def test_division_by_zero_follows_js():
    tree, index = _expression("1 / 0")
    assert evaluate_constant(tree, index) == math.inf

    tree, index = _expression("0 / 0")
    assert math.isnan(evaluate_constant(tree, index))


def test_closures_and_calls():
    interpreter = _run("function add(a, b) { return a + b; } var twice = function (f, x) { return f(f(x, 1), 1); };")

    add = interpreter.globals.get("add")
    twice = interpreter.globals.get("twice")

    assert interpreter.call(add, [2, 3]) == 5
    assert interpreter.call(twice, [add, 10]) == 12


def test_array_rotation_loop():
    interpreter = _run(
        "var arr = ['c', 'a', 'b']; var n = 1;"
        "for (var i = 0; i <= n; i++) { arr.push(arr.shift()); }"
    )

    assert interpreter.globals.get("arr").items == ["b", "c", "a"]


def test_try_catch_receives_thrown_value():
    interpreter = _run("var r; try { throw 'boom'; } catch (e) { r = e; } finally { r = r + '!'; }")

    assert interpreter.globals.get("r") == "boom!"


def test_uncaught_throw_surfaces_as_js_throw():
    with pytest.raises(JSThrow) as excinfo:
        _run("throw 'bad';")

    assert excinfo.value.value == "bad"


def test_step_budget_stops_endless_loops():
    with pytest.raises(NotClosedForm):
        _run("while (true) {}", step_budget=100)


def test_free_identifiers_are_not_closed_form():
    with pytest.raises(NotClosedForm):
        _run("var t = Date.now();")


def test_unsupported_statements_are_refused():
    with pytest.raises(NotClosedForm):
        _run("for (var k in o) {}", globals={"o": JSArray()})


def test_native_functions_receive_arguments():
    seen = []
    native = NativeFunction("spy", lambda *args: seen.append(args) or len(seen))
    tree, index = _expression("spy(1, 'a') + spy()")

    result = Interpreter(tree, globals={"spy": native}).evaluate(index)

    assert result == 3
    assert seen == [(1, "a"), ()]
