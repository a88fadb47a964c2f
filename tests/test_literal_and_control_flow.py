import textwrap

from jsdeob.parser import parse
from jsdeob.printer import generate


def _reprinted(source):
    return generate(parse(source))


def test_literal_normalizer_canonicalises_spellings(run_only):
    source = "var a = 'x' + \"y\"; var b = 0x10; var c = !0; var d = o[\"prop\"];"

    result = run_only(source, "literal_normalizer")

    assert result.code == 'var a = "xy";\nvar b = 16;\nvar c = true;\nvar d = o.prop;\n'
    record = result.report.record("literal_normalizer")
    assert record.rewrites == 5
    assert record.matched and not record.partial


def test_literal_normalizer_keeps_non_identifier_members(run_only):
    result = run_only('o["a-b"] = !1;', "literal_normalizer")

    assert result.code == 'o["a-b"] = false;\n'


def test_unflattener_linearises_a_chain(run_only):
    source = (
        "var s = 1; while (s !== 4) { switch (s) {"
        " case 1: a(); s = 2; break;"
        " case 2: b(); s = 3; break;"
        " case 3: c(); s = 4; break; } }"
    )

    result = run_only(source, "control_flow_unflattener")

    assert result.code == "a();\nb();\nc();\n"
    assert result.report.record("control_flow_unflattener").rewrites == 1


def test_unflattener_rebuilds_conditional_transitions(run_only):
    source = (
        "function f(y) { var s = 0; while (true) { switch (s) {"
        " case 0: x(); s = y ? 1 : 2; break;"
        " case 1: p(); s = 3; break;"
        " case 2: q(); s = 3; break;"
        " case 3: done(); return; } } }"
    )

    expected = textwrap.dedent(
        """
        function f(y) {
            x();
            if (y) {
                p();
            } else {
                q();
            }
            done();
            return;
        }
        """
    ).lstrip()

    assert run_only(source, "control_flow_unflattener").code == expected


def test_unflattener_leaves_cycles_in_place(run_only):
    source = "var s = 0; while (true) { switch (s) { case 0: a(); s = 1; break; case 1: b(); s = 0; break; } }"

    result = run_only(source, "control_flow_unflattener")

    assert result.code == _reprinted(source)
    record = result.report.record("control_flow_unflattener")
    assert not record.matched
    assert record.partial
    (note,) = record.notes
    assert note.startswith("switch (s) left in place: state graph contains a cycle")
    assert result.report.warnings == ["control_flow_unflattener: 1 occurrence(s) left untouched"]


def test_unflattener_ignores_string_keyed_loops(run_only):
    source = 'var s = "a"; while (s !== "z") { switch (s) { case "a": f(); s = "z"; break; } }'

    result = run_only(source, "control_flow_unflattener")

    assert result.code == _reprinted(source)
    assert result.report.record("control_flow_unflattener").notes == []


def test_unflattener_respects_protected_state_variables(run_only):
    source = "var s = 1; while (s !== 2) { switch (s) { case 1: a(); s = 2; break; } }"

    result = run_only(source, "control_flow_unflattener", protected_names=frozenset({"s"}))

    assert result.code == _reprinted(source)
    assert result.report.record("control_flow_unflattener").notes == [
        "switch (s) uses protected state variable 's'"
    ]


def test_unflattener_state_limit(run_only):
    source = "var s = 1; while (s !== 3) { switch (s) { case 1: a(); s = 2; break; case 2: b(); s = 3; break; } }"

    result = run_only(source, "control_flow_unflattener", max_dispatch_states=1)

    assert result.code == _reprinted(source)
    assert result.report.record("control_flow_unflattener").notes == ["switch (s) has 2 states (limit 1)"]
