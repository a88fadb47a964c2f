import json
import textwrap

from jsdeob.report import PassRecord, RunReport


def _report():
    report = RunReport(input_length=120, output_length=40)
    report.passes = [
        PassRecord(pass_name="literal_normalizer", group=1, rewrites=3, matched=True, duration=0.25),
        PassRecord(
            pass_name="wrapper_inliner",
            group=2,
            matched=False,
            partial=True,
            notes=["call to 'w' kept: spread argument"],
        ),
        PassRecord(pass_name="string_array_inliner", group=4, skipped=True),
    ]
    report.warnings = ["wrapper_inliner: 1 occurrence(s) left untouched"]
    return report


def test_text_report_layout():
    expected = textwrap.dedent(
        """\
        Input length: 120 chars
        [group 1] literal_normalizer: 3 rewrites (matched) in 0.250s
        [group 2] wrapper_inliner: 0 rewrites (no match, partial) in 0.000s
            - call to 'w' kept: spread argument
        [group 4] string_array_inliner: skipped
        Total rewrites: 3
        Warnings:
          - wrapper_inliner: 1 occurrence(s) left untouched
        Final output length: 40 chars"""
    )

    assert _report().to_text() == expected


def test_text_report_without_warnings():
    report = RunReport()

    assert "Warnings: none" in report.to_text()


def test_json_report_renames_pass_field():
    data = json.loads(_report().to_json())

    assert data["input_length"] == 120
    assert data["passes"][0]["pass"] == "literal_normalizer"
    assert "pass_name" not in data["passes"][0]
    assert data["passes"][2]["skipped"] is True


def test_record_lookup_and_totals():
    report = _report()

    assert report.record("wrapper_inliner").partial
    assert report.record("missing") is None
    assert report.total_rewrites == 3
