import json
from dataclasses import dataclass
from pathlib import Path

import pytest

from jsdeob import utils


@dataclass
class _Sample:
    name: str
    tags: frozenset


def test_write_text_is_atomic(tmp_path):
    target = tmp_path / "nested" / "out.js"

    utils.write_text(target, "first")
    utils.write_text(target, "second")

    assert target.read_text(encoding="utf-8") == "second"
    assert [item.name for item in target.parent.iterdir()] == ["out.js"]


def test_failed_replace_keeps_previous_content(tmp_path, monkeypatch):
    target = tmp_path / "out.js"
    target.write_text("old", encoding="utf-8")

    def refuse(self, other):
        raise OSError("replace refused")

    monkeypatch.setattr(Path, "replace", refuse)
    with pytest.raises(OSError):
        utils.write_text(target, "new")

    assert target.read_text(encoding="utf-8") == "old"
    assert [item.name for item in tmp_path.iterdir()] == ["out.js"]


def test_write_json_sorts_keys(tmp_path):
    target = tmp_path / "data.json"

    utils.write_json(target, {"b": 1, "a": "é"}, sort_keys=True)

    text = target.read_text(encoding="utf-8")
    assert text.index('"a"') < text.index('"b"')
    assert "é" in text
    assert json.loads(text) == {"a": "é", "b": 1}


def test_safe_read_file_handles_missing_and_binary(tmp_path):
    assert utils.safe_read_file(tmp_path / "missing.js") is None

    broken = tmp_path / "broken.js"
    broken.write_bytes(b"\xff\xfe\xfa")
    assert utils.safe_read_file(broken) is None

    good = tmp_path / "good.js"
    good.write_text("f();", encoding="utf-8")
    assert utils.safe_read_file(good) == "f();"


def test_metadata_serialisation():
    summary = utils.summarise_metadata(
        {
            "sample": _Sample("t", frozenset({"b", "a"})),
            "path": Path("x") / "y",
            "pair": (1, None),
            "other": object,
        }
    )

    assert summary["sample"] == {"name": "t", "tags": ["a", "b"]}
    assert summary["path"] == str(Path("x") / "y")
    assert summary["pair"] == [1, None]
    assert summary["other"] == repr(object)


def test_format_pass_summary():
    assert utils.format_pass_summary([]) == ""
    assert utils.format_pass_summary([("a", 0.5), ("long_name", 1.0)]) == (
        "Pass       Duration\na          0.500s\nlong_name  1.000s"
    )
