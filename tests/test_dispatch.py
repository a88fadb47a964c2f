import pytest

from jsdeob.dispatch import (
    describe_loop,
    has_integer_cases,
    match_split_dispatcher,
    match_state_machine,
    rewrite_split_dispatcher,
    state_key,
)
from jsdeob.exceptions import AmbiguousMatch
from jsdeob.parser import parse
from jsdeob.printer import generate
from jsdeob.scope import analyze

CHAIN = (
    "var s = 1; while (s !== 4) { switch (s) {"
    " case 1: a(); s = 2; break;"
    " case 2: b(); s = 3; break;"
    " case 3: c(); s = 4; break; } }"
)

SPLIT = (
    'var o = "2|0|1".split("|"), i = 0; while (true) { switch (o[i++]) {'
    ' case "0": b(); continue;'
    ' case "1": c(); continue;'
    ' case "2": a(); continue; } break; }'
)


def _loop(source, position=1):
    tree = parse(source)
    return tree, analyze(tree), tree.children(tree.root, "body")[position]


def test_state_machine_match_reads_initial_and_exit_states():
    tree, info, loop = _loop(CHAIN)

    machine = match_state_machine(tree, info, loop)

    assert machine.initial == ("number", 1)
    assert machine.exit_key == ("number", 4)
    assert machine.binding.name == "s"
    assert [item.state for item in machine.plan] == [("number", 1), ("number", 2), ("number", 3)]


def test_loops_without_a_switch_are_not_dispatchers():
    tree, info, loop = _loop("while (x) { f(); }", position=0)

    assert match_state_machine(tree, info, loop) is None
    assert match_split_dispatcher(tree, info, loop) is None


def test_state_variable_used_inside_a_case_is_ambiguous():
    tree, info, loop = _loop("var s = 1; while (s !== 3) { switch (s) { case 1: a(s); s = 3; break; } }")

    with pytest.raises(AmbiguousMatch, match="used outside"):
        match_state_machine(tree, info, loop)


def test_default_case_is_ambiguous():
    tree, info, loop = _loop("var s = 1; while (s !== 3) { switch (s) { case 1: s = 3; break; default: f(); } }")

    with pytest.raises(AmbiguousMatch, match="default case"):
        match_state_machine(tree, info, loop)


def test_initial_state_must_precede_the_loop():
    tree, info, loop = _loop("var s = 1; f(); while (s !== 2) { switch (s) { case 1: s = 2; break; } }", position=2)

    with pytest.raises(AmbiguousMatch, match="initial state"):
        match_state_machine(tree, info, loop)


def test_split_dispatcher_follows_the_order_string():
    tree, info, loop = _loop(SPLIT)

    dispatcher = match_split_dispatcher(tree, info, loop)

    assert dispatcher.sequence == [("string", "2"), ("string", "0"), ("string", "1")]

    rewrite_split_dispatcher(tree, dispatcher)

    assert generate(tree) == "a();\nb();\nc();\n"


def test_split_order_naming_a_missing_case_is_ambiguous():
    tree, info, loop = _loop(
        'var o = "0|3".split("|"), i = 0; while (true) { switch (o[i++]) { case "0": a(); continue; } }'
    )

    with pytest.raises(AmbiguousMatch, match="no case"):
        match_split_dispatcher(tree, info, loop)


def test_describe_and_classify_loops():
    tree, _, loop = _loop(CHAIN)
    assert describe_loop(tree, loop) == "switch (s)"
    assert has_integer_cases(tree, loop)

    tree, _, loop = _loop(SPLIT)
    assert describe_loop(tree, loop) == "switch (o[i++])"
    assert not has_integer_cases(tree, loop)


def test_state_keys_follow_strict_equality():
    assert state_key(1) == state_key(1.0)
    assert state_key("1") != state_key(1)
    assert state_key(True) == ("boolean", True)
    assert state_key(float("nan")) is None
