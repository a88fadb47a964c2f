import textwrap

import pytest

from jsdeob import builders
from jsdeob.exceptions import ParseError
from jsdeob.parser import parse
from jsdeob.printer import canonical_literal, generate, quote_string


def _roundtrip(source: str) -> str:
    return generate(parse(source))


def test_parse_error_carries_position():
    with pytest.raises(ParseError) as excinfo:
        parse("var = 1;")

    assert excinfo.value.line == 1
    assert "invalid JavaScript" in str(excinfo.value)


def test_printer_uses_four_space_blocks():
    source = "function f(a, b) { if (a) { return b; } else { g(); } }"

    expected = textwrap.dedent(
        """
        function f(a, b) {
            if (a) {
                return b;
            } else {
                g();
            }
        }
        """
    ).lstrip()

    assert _roundtrip(source) == expected


def test_printer_keeps_raw_literal_spelling():
    assert _roundtrip("x = 0x1f + 'a' + 1e3;") == "x = 0x1f + 'a' + 1e3;\n"


@pytest.mark.parametrize(
    "source, expected",
    [
        ("x = (1 + 2) * 3;", "x = (1 + 2) * 3;\n"),
        ("x = 1 + 2 * 3;", "x = 1 + 2 * 3;\n"),
        ("x = a - (b - c);", "x = a - (b - c);\n"),
        ("x = - -y;", "x = - -y;\n"),
        ("x = typeof y;", "x = typeof y;\n"),
        ("x = (a, b);", "x = (a, b);\n"),
        ("x = a ? b : c;", "x = a ? b : c;\n"),
        ("new (f())();", "new (f())();\n"),
        ("(function () {})();", "(function() {}());\n"),
        ("x = (1).toString();", "x = (1).toString();\n"),
    ],
)
def test_printer_parenthesises_by_precedence(source, expected):
    assert _roundtrip(source) == expected


def test_objects_print_one_property_per_line():
    expected = textwrap.dedent(
        """
        var o = {
            a: 1,
            "b": [1, 2]
        };
        """
    ).lstrip()

    assert _roundtrip('var o = {a: 1, "b": [1, 2]};') == expected


def test_switch_and_loops_layout():
    source = "while (true) { switch (s) { case 1: a(); break; default: b(); } }"

    expected = textwrap.dedent(
        """
        while (true) {
            switch (s) {
                case 1:
                    a();
                    break;
                default:
                    b();
            }
        }
        """
    ).lstrip()

    assert _roundtrip(source) == expected


def test_built_literals_print_canonically():
    tree = parse("x;")
    statement = tree.children(tree.root, "body")[0]
    tree.replace(tree.child(statement, "expression"), builders.negative_aware_number(tree, -5))
    assert generate(tree) == "-5;\n"

    tree.replace(tree.child(statement, "expression"), builders.literal(tree, 'say "hi"\n'))
    assert generate(tree) == '"say \\"hi\\"\\n";\n'


def test_quote_string_escapes_control_characters():
    assert quote_string("a\x01b") == '"a\\x01b"'
    assert quote_string("tab\there") == '"tab\\there"'
    assert canonical_literal(None) == "null"
    assert canonical_literal(True) == "true"
    assert canonical_literal(2.5) == "2.5"


def test_empty_program_prints_nothing():
    assert _roundtrip("") == ""


def test_printed_output_parses_to_the_same_text():
    source = textwrap.dedent(
        """
        var a = [1, , 3];
        label: for (var i = 0; i < 3; i++) {
            if (i === 1) continue label;
        }
        try { f(); } catch (e) { g(e); } finally { h(); }
        var arrow = (x) => ({k: x});
        """
    )

    first = _roundtrip(source)

    assert _roundtrip(first) == first
