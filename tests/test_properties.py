"""Whole-pipeline properties checked over a small corpus of inputs."""

import pytest

from jsdeob import deobfuscate
from jsdeob.parser import parse
from jsdeob.pipeline import PASS_SPECS
from jsdeob.printer import generate
from jsdeob.scope import analyze

CORPUS = [
    "var a = 'x' + \"y\"; var b = 0x10; use(a, b, !0);",
    'var a = []; a.push("p"); a.push("q"); use(a);',
    "function w(x, y) { return x + y; } var r = w(1, 2); use(r);",
    "var s = 1; while (s !== 3) { switch (s) { case 1: a(); s = 2; break; case 2: b(); s = 3; break; } }",
    'var o = "1|0".split("|"), i = 0; while (true) { switch (o[i++]) { case "0": b(); continue; case "1": a(); continue; } break; }',
    'var T = ["b", "a"]; (function (arr, n) { while (--n) { arr.push(arr.shift()); } })(T, 2);'
    " function A(i) { return T[i - 0]; } use(A(0), A(1));",
    "var s = 0; while (true) { switch (s) { case 0: a(); s = 1; break; case 1: b(); s = 0; break; } }",
    "label: for (;;) { if (x) break label; }",
]


@pytest.mark.parametrize("source", CORPUS)
def test_output_reparses_and_is_stable(source):
    first = deobfuscate(source).code

    assert generate(parse(first)) == first
    assert deobfuscate(first).code == first


@pytest.mark.parametrize("source", CORPUS)
def test_no_new_free_names(source):
    before = analyze(parse(source)).free_names()

    after = analyze(parse(deobfuscate(source).code)).free_names()

    assert after <= before


PASS_SAMPLES = {
    "literal_normalizer": "var a = 'x' + \"y\"; var b = 0x10; use(a, b, !0, o[\"prop\"]);",
    "control_flow_unflattener": CORPUS[3],
    "array_builder": CORPUS[1],
    "wrapper_inliner": CORPUS[2],
    "string_array_solver": CORPUS[5],
    "state_machine_solver": CORPUS[4],
    "string_array_inliner": 'var T = ["a", "b"]; function A(i) { return T[i]; } use(A(1), A(0));',
}


def test_every_pass_has_a_sample():
    assert set(PASS_SAMPLES) == {spec.name for spec in PASS_SPECS}


@pytest.mark.parametrize("name", sorted(PASS_SAMPLES))
def test_pass_rerun_on_its_own_output_rewrites_nothing(run_only, name):
    first = run_only(PASS_SAMPLES[name], name)
    assert first.report.record(name).rewrites > 0

    again = run_only(first.code, name)

    assert again.report.record(name).rewrites == 0
    assert again.code == first.code
