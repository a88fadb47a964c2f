import textwrap

from jsdeob.parser import parse
from jsdeob.printer import generate


def _reprinted(source):
    return generate(parse(source))


def test_array_builder_folds_append_runs(run_only):
    source = 'var a = []; a.push("a"); a.push("b"); a[a.length] = "c"; a[3] = "d"; use(a);'

    result = run_only(source, "array_builder")

    assert result.code == 'var a = ["a", "b", "c", "d"];\nuse(a);\n'
    assert result.report.record("array_builder").rewrites == 1


def test_array_builder_refuses_appends_after_the_run(run_only):
    source = 'var a = []; a.push("a"); if (x) { a.push("e"); } use(a);'

    result = run_only(source, "array_builder")

    assert result.code == _reprinted(source)
    assert result.report.record("array_builder").notes == [
        "array 'a' is appended to again after the folded run; left unmodified"
    ]


def test_array_builder_ignores_arrays_without_appends(run_only):
    source = "var a = []; use(a);"

    result = run_only(source, "array_builder")

    assert result.code == "var a = [];\nuse(a);\n"
    assert not result.report.record("array_builder").matched


def test_wrapper_inliner_substitutes_arguments(run_only):
    source = "function w(x, y) { return x + y; } var r = w(1, 2);"

    result = run_only(source, "wrapper_inliner")

    assert result.code == "var r = 1 + 2;\n"


def test_wrapper_chains_collapse_over_rounds(run_only):
    source = textwrap.dedent(
        """
        function inner(a, b) { return a * b; }
        function outer(a, b) { return inner(a, b); }
        outer(2, 3);
        """
    )

    result = run_only(source, "wrapper_inliner")

    assert result.code == "2 * 3;\n"
    assert result.report.record("wrapper_inliner").rewrites == 4


def test_escaping_wrapper_is_kept(run_only):
    source = "function w(x) { return x; } var g = w; g(1);"

    result = run_only(source, "wrapper_inliner")

    assert result.code == _reprinted(source)


def test_arity_mismatch_is_reported(run_only):
    source = "function w(x) { return x; } w(1, 2);"

    result = run_only(source, "wrapper_inliner")

    assert result.code == _reprinted(source)
    record = result.report.record("wrapper_inliner")
    assert record.notes == ["call to 'w' kept: arity mismatch (2 arguments for 1 parameters)"]
    assert record.partial and not record.matched


def test_protected_wrapper_is_kept(run_only):
    source = "function w(x, y) { return x + y; } var r = w(1, 2);"

    result = run_only(source, "wrapper_inliner", protected_names=frozenset({"w"}))

    assert result.code == _reprinted(source)


def test_array_builder_refuses_append_after_intervening_read(run_only):
    source = (
        'var a = []; a.push("a", "b"); a.push("c"); a.push("d");'
        ' if (a.length > 2) { log(); } a.push("e"); use(a);'
    )

    result = run_only(source, "array_builder")

    assert result.code == _reprinted(source)
    assert result.report.record("array_builder").notes == [
        "array 'a' is appended to again after the folded run; left unmodified"
    ]


def test_impure_argument_keeps_wrapper_reading_outer_state(run_only):
    source = "var x = 1; function w(a) { return x + a; } var r = w(x++); use(r);"

    result = run_only(source, "wrapper_inliner")

    assert result.code == _reprinted(source)
    assert result.report.record("wrapper_inliner").notes == [
        "call to 'w' kept: impure argument may change 'x' before the wrapper reads it"
    ]


def test_pure_argument_inlines_wrapper_reading_outer_state(run_only):
    source = "var x = 1; function w(a) { return x + a; } var r = w(2); x = 5; use(r);"

    result = run_only(source, "wrapper_inliner")

    assert result.code == "var x = 1;\nvar r = x + 2;\nx = 5;\nuse(r);\n"
