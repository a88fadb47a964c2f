import textwrap

from jsdeob import deobfuscate
from jsdeob.evaluator import Interpreter
from jsdeob.options import PipelineOptions
from jsdeob.parser import parse
from jsdeob.printer import generate

ROTATED = textwrap.dedent(
    """
    var T = ["world", "hello"];
    (function (arr, n) { while (--n) { arr.push(arr.shift()); } })(T, 2);
    function A(i) { i = i - 0; var v = T[i]; return v; }
    console.log(A(0) + " " + A(1));
    """
)


def test_full_pipeline_inlines_rotated_table():
    result = deobfuscate(ROTATED)

    assert result.code == 'console.log("hello" + " " + "world");\n'
    assert result.report.record("string_array_solver").matched
    assert result.report.record("string_array_inliner").matched


def test_solver_rotates_table_and_simplifies_accessor(run_only):
    result = run_only(ROTATED, "string_array_solver")

    expected = textwrap.dedent(
        """
        var T = ["hello", "world"];
        function A(i) {
            return T[i];
        }
        console.log(A(0) + " " + A(1));
        """
    ).lstrip()

    assert result.code == expected
    # table rewrite, removed rotation call, canonical accessor
    assert result.report.record("string_array_solver").rewrites == 3


def test_runtime_dependent_rotation_is_left_alone(run_only):
    source = textwrap.dedent(
        """
        var T = ["a", "b"];
        (function (arr, n) { while (--n) { arr.push(arr.shift()); } })(T, Date.now());
        function A(i) { return T[i]; }
        f(A(0));
        """
    )

    result = run_only(source, "string_array_solver")

    assert result.code == generate(parse(source))
    assert result.report.record("string_array_solver").notes == [
        "string table 'T' left untouched: rotation is not closed-form (free identifier 'Date')"
    ]


def test_self_redefining_table_function(run_only):
    source = textwrap.dedent(
        """
        function T() { var a = ["x", "y"]; T = function () { return a; }; return T(); }
        function A(i) { var t = T(); return t[i]; }
        console.log(A(1));
        """
    )

    result = run_only(source, "string_array_solver", "string_array_inliner")

    assert result.code == 'console.log("y");\n'


def test_function_expression_accessor(run_only):
    source = 'var T = ["a", "b"]; var A = function (i) { return T[i]; }; f(A(1));'

    result = run_only(source, "string_array_solver", "string_array_inliner")

    assert result.code == 'f("b");\n'


def test_accessor_aliases_are_followed(run_only):
    source = 'var T = ["a", "b"]; function A(i) { return T[i]; } var B = A; f(B(0));'

    result = run_only(source, "string_array_solver", "string_array_inliner")

    assert result.code == 'f("a");\n'


def test_inliner_keeps_out_of_range_lookups(run_only):
    source = 'var T = ["a"]; function A(i) { return T[i]; } f(A(0), A(5));'

    result = run_only(source, "string_array_solver", "string_array_inliner")

    assert 'f("a", A(5));' in result.code
    (note,) = result.report.record("string_array_inliner").notes
    assert note.startswith("call to 'A' kept: index 5")


def test_protected_table_survives_inlining():
    options = PipelineOptions(protected_names=frozenset({"T"}))

    result = deobfuscate('var T = ["a", "b"]; function A(i) { return T[i]; } f(A(1));', options)

    assert 'f("b");' in result.code
    assert 'var T = ["a", "b"];' in result.code


OFFSET_ROTATED = textwrap.dedent(
    """
    var T = ["3x", "1y", "7z", "5w"];
    function A(i) { i = i - 0x1f0; var v = T[i]; return v; }
    (function (arr, target) {
        while (!![]) {
            try {
                var head = parseInt(A(0x1f0));
                if (head === target) break;
                else arr["push"](arr["shift"]());
            } catch (e) {
                arr["push"](arr["shift"]());
            }
        }
    })(T, 7);
    use(A(0x1f0), A(0x1f1), A(0x1f2), A(0x1f3));
    """
)


def test_inlined_strings_match_accessor_with_offset_and_parse_int_rotation():
    tree = parse(OFFSET_ROTATED)
    interpreter = Interpreter(tree)
    interpreter.run_statements(tree.children(tree.root, "body")[:3])
    accessor = interpreter.globals.get("A")
    expected = [interpreter.call(accessor, [0x1F0 + k]) for k in range(4)]

    result = deobfuscate(OFFSET_ROTATED)

    assert expected == ["7z", "5w", "3x", "1y"]
    assert result.code == "use(" + ", ".join(f'"{value}"' for value in expected) + ");\n"
    assert result.report.record("string_array_solver").matched
