import json
import logging
import textwrap

import pytest

from jsdeob import builders, pipeline
from jsdeob.exceptions import InternalInvariantViolation, ParseError, PatternNotFound, PipelineExecutionError
from jsdeob.options import PipelineOptions
from jsdeob.parser import parse
from jsdeob.passes.base import FailurePolicy, PassSpec

SAMPLE = textwrap.dedent(
    """
    var T = ["world", "hello"];
    (function (arr, n) { while (--n) { arr.push(arr.shift()); } })(T, 2);
    function A(i) { i = i - 0; var v = T[i]; return v; }
    var s = 1;
    while (s !== 3) { switch (s) { case 1: log(A(0)); s = 2; break; case 2: log(A(1)); s = 3; break; } }
    """
)

EXPECTED = 'log("hello");\nlog("world");\n'


def test_pipeline_failure_wraps_exception():
    registry = pipeline.PassRegistry()

    def boom(_ctx):
        raise RuntimeError("boom")

    registry.register_pass("test", boom, 1)
    ctx = pipeline.Context(source="")

    with pytest.raises(PipelineExecutionError) as excinfo:
        registry.run_passes(ctx)

    error = excinfo.value
    assert error.pass_name == "test"
    assert isinstance(error.cause, RuntimeError)
    assert error.timings == []
    assert error.duration >= 0


def test_registry_honours_skip_and_only():
    registry = pipeline.PassRegistry()
    seen = []
    registry.register_pass("b", lambda ctx: seen.append("b"), 2)
    registry.register_pass("a", lambda ctx: seen.append("a"), 1)
    registry.register_pass("c", lambda ctx: seen.append("c"), 3)

    assert registry.names() == ["a", "b", "c"]

    registry.run_passes(pipeline.Context(source=""), skip=["b"])
    registry.run_passes(pipeline.Context(source=""), only=["c"])

    assert seen == ["a", "c", "c"]


def test_parse_failure_is_reported_as_parse_stage():
    with pytest.raises(PipelineExecutionError) as excinfo:
        pipeline.deobfuscate("var = ;")

    assert excinfo.value.stage == "parse"
    assert isinstance(excinfo.value.cause, ParseError)


def test_full_pipeline_on_combined_sample():
    result = pipeline.deobfuscate(SAMPLE)

    assert result.code == EXPECTED
    report = result.report
    assert [record.pass_name for record in report.passes] == [spec.name for spec in pipeline.PASS_SPECS]
    assert report.record("control_flow_unflattener").rewrites == 1
    assert report.input_length == len(SAMPLE)
    assert report.output_length == len(EXPECTED)
    assert report.warnings == []


def test_output_is_a_fixed_point():
    first = pipeline.deobfuscate(SAMPLE).code

    assert pipeline.deobfuscate(first).code == first


def test_in_memory_mode_matches_reparsing():
    options = PipelineOptions(reparse_between_groups=False)

    assert pipeline.deobfuscate(SAMPLE, options).code == EXPECTED


def test_artifacts_are_written_per_group_and_pass(tmp_path):
    artifacts = tmp_path / "artifacts"
    options = PipelineOptions(artifacts_dir=artifacts)

    pipeline.deobfuscate(SAMPLE, options)

    for group in (1, 2, 3, 4):
        assert (artifacts / f"group{group}.js").is_file()
    assert (artifacts / "group4.js").read_text(encoding="utf-8") == EXPECTED
    for spec in pipeline.PASS_SPECS:
        metadata = json.loads((artifacts / f"{spec.name}.json").read_text(encoding="utf-8"))
        assert {"rewrites", "matched", "partial", "notes"} <= set(metadata)
    solver = json.loads((artifacts / "string_array_solver.json").read_text(encoding="utf-8"))
    assert solver["tables"][0]["array"] == "T"


def test_persist_path_holds_latest_group_output(tmp_path):
    target = tmp_path / "out.js"

    result = pipeline.deobfuscate(SAMPLE, PipelineOptions(persist_path=target))

    assert target.read_text(encoding="utf-8") == result.code


def test_progress_messages_announce_each_group():
    messages = []

    pipeline.deobfuscate(SAMPLE, progress=messages.append)

    assert messages[0] == "--- Starting Pass 1: Literal Normalization and Control-Flow Unflattening ---"
    assert messages[-1] == "Pass 4 complete."
    assert messages.count("Pass 2 complete.") == 1


def test_unselected_passes_are_recorded_as_skipped():
    result = pipeline.deobfuscate("var a = 'x';", PipelineOptions(only_passes=frozenset({"literal_normalizer"})))

    assert result.code == 'var a = "x";\n'
    skipped = [record.pass_name for record in result.report.passes if record.skipped]
    assert "literal_normalizer" not in skipped
    assert len(skipped) == len(pipeline.PASS_SPECS) - 1


def test_unknown_pass_names_are_logged(caplog):
    caplog.set_level(logging.WARNING, logger="jsdeob.pipeline")
    options = PipelineOptions(skip_passes=frozenset({"nope"}))

    pipeline.deobfuscate("f();", options)

    assert "unknown pass name 'nope' ignored" in caplog.text


def test_protected_names_survive_the_pipeline():
    source = "function w(x, y) { return x + y; } var r = w(1, 2);"

    result = pipeline.deobfuscate(source, PipelineOptions(protected_names=frozenset({"w"})))

    assert "function w(x, y)" in result.code
    assert "w(1, 2)" in result.code


def _context(source):
    ctx = pipeline.Context(source=source)
    ctx.tree = parse(source)
    return ctx


def test_pass_introducing_free_names_is_an_invariant_violation():
    def run(pass_ctx):
        tree = pass_ctx.tree
        statement = tree.children(tree.root, "body")[0]
        tree.replace(tree.child(statement, "expression"), builders.identifier(tree, "ghost"))
        pass_ctx.count()
        return {}

    spec = PassSpec("bad", 1, 5, run, "anything")

    with pytest.raises(InternalInvariantViolation, match="ghost"):
        pipeline._apply(_context("x;"), spec)


def test_mandatory_pass_without_match_raises():
    spec = PassSpec("strict", 1, 5, lambda pass_ctx: {}, "thing", FailurePolicy.MANDATORY)

    with pytest.raises(PatternNotFound) as excinfo:
        pipeline._apply(_context("x;"), spec)

    assert excinfo.value.pass_name == "strict"


def test_best_effort_pass_without_match_is_recorded():
    spec = PassSpec("lenient", 1, 5, lambda pass_ctx: {"checked": 0}, "thing")
    ctx = _context("x;")

    pipeline._apply(ctx, spec)

    record = ctx.report.record("lenient")
    assert record.rewrites == 0
    assert not record.matched
    assert ctx.pass_metadata["lenient"]["checked"] == 0


def test_deep_concatenation_chain_is_folded():
    source = "x = " + " + ".join(["'a'"] * 1200) + ";"

    result = pipeline.deobfuscate(source)

    assert result.code == 'x = "' + "a" * 1200 + '";\n'


def test_finishing_a_group_without_a_tree_is_an_invariant_violation():
    ctx = pipeline.Context(source="")

    with pytest.raises(InternalInvariantViolation):
        pipeline._finish_group(ctx, 1)
