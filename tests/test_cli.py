import json
import logging

from jsdeob.main import build_arg_parser, main
from jsdeob.options import PROTECTED_ENV

SOURCE = "var a = 'x' + 'y'; function w(p, q) { return p + q; } log(w(a, 1));"


def _write_input(tmp_path, text=SOURCE):
    path = tmp_path / "input.js"
    path.write_text(text, encoding="utf-8")
    return path


def test_parser_defaults():
    args = build_arg_parser().parse_args([])

    assert args.input == "input.txt"
    assert args.output == "output.js"
    assert args.protect == []
    assert not args.in_memory


def test_cli_writes_output_and_report(tmp_path, capsys):
    source = _write_input(tmp_path)
    output = tmp_path / "out.js"
    report = tmp_path / "report.json"

    code = main([str(source), str(output), "--report-json", str(report)])

    assert code == 0
    assert output.read_text(encoding="utf-8") == 'var a = "xy";\nlog(a + 1);\n'
    data = json.loads(report.read_text(encoding="utf-8"))
    assert [item["pass"] for item in data["passes"]][0] == "literal_normalizer"
    printed = capsys.readouterr().out
    assert "--- Starting Pass 1:" in printed
    assert "Total rewrites:" in printed
    assert f"Wrote {output}" in printed


def test_cli_protect_flag_keeps_wrapper(tmp_path):
    source = _write_input(tmp_path)
    output = tmp_path / "out.js"

    assert main([str(source), str(output), "--protect", "w"]) == 0

    assert "function w(p, q)" in output.read_text(encoding="utf-8")


def test_cli_reads_protected_names_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv(PROTECTED_ENV, "w")
    source = _write_input(tmp_path)
    output = tmp_path / "out.js"

    assert main([str(source), str(output)]) == 0

    assert "function w(p, q)" in output.read_text(encoding="utf-8")


def test_cli_skip_passes(tmp_path):
    source = _write_input(tmp_path)
    output = tmp_path / "out.js"

    assert main([str(source), str(output), "--skip-passes", "wrapper_inliner", "--in-memory"]) == 0

    assert "function w(p, q)" in output.read_text(encoding="utf-8")


def test_cli_reports_invalid_javascript(tmp_path, capsys):
    source = _write_input(tmp_path, "var = ;")
    output = tmp_path / "out.js"

    assert main([str(source), str(output)]) == 1

    assert "Deobfuscation failed" in capsys.readouterr().err
    assert not output.exists()


def test_cli_missing_input(tmp_path, capsys):
    assert main([str(tmp_path / "missing.js"), str(tmp_path / "out.js")]) == 2

    assert "Could not read input file" in capsys.readouterr().err


def test_cli_rejects_bad_config(tmp_path):
    source = _write_input(tmp_path)
    config = tmp_path / "config.json"
    config.write_text("{not json", encoding="utf-8")

    assert main([str(source), str(tmp_path / "out.js"), "--config", str(config)]) == 2


def test_cli_debug_log_captures_trace(tmp_path):
    source = _write_input(tmp_path)
    trace = tmp_path / "logs" / "trace.log"

    assert main([str(source), str(tmp_path / "out.js"), "--debug-log", str(trace)]) == 0

    assert "pipeline finished" in trace.read_text(encoding="utf-8")


def test_cli_artifacts_directory(tmp_path):
    source = _write_input(tmp_path)
    artifacts = tmp_path / "artifacts"

    assert main([str(source), str(tmp_path / "out.js"), "--write-artifacts", str(artifacts)]) == 0

    assert (artifacts / "group1.js").is_file()
    assert (artifacts / "wrapper_inliner.json").is_file()


def test_cli_debug_log_keeps_errors_on_the_console(tmp_path, caplog):
    source = _write_input(tmp_path, "var = ;")
    trace = tmp_path / "trace.log"

    with caplog.at_level(logging.WARNING):
        code = main([str(source), str(tmp_path / "out.js"), "--debug-log", str(trace)])

    assert code == 1
    assert "deobfuscation failed" in caplog.text
    assert "deobfuscation failed" in trace.read_text(encoding="utf-8")
