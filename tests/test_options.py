import json
import logging
from pathlib import Path

import pytest

from jsdeob.options import PROTECTED_ENV, PipelineOptions, load_options, protected_from_env


def test_defaults():
    options = PipelineOptions()

    assert options.reparse_between_groups
    assert options.protected_names == frozenset()
    assert not options.is_protected("x")
    assert not options.is_protected(None)


@pytest.mark.parametrize("field_name", ["max_rounds", "max_dispatch_states", "rotation_step_budget"])
def test_limits_must_be_positive(field_name):
    with pytest.raises(ValueError, match=field_name):
        PipelineOptions(**{field_name: 0})


def test_with_protected_merges_names():
    options = PipelineOptions(protected_names=frozenset({"a"})).with_protected(["b", " c ", ""])

    assert options.protected_names == frozenset({"a", "b", "c"})
    assert options.is_protected("c")


def test_from_mapping_coerces_values(caplog):
    caplog.set_level(logging.WARNING, logger="jsdeob.options")

    options = PipelineOptions.from_mapping(
        {
            "protected_names": "x, y",
            "skip_passes": ["wrapper_inliner"],
            "artifacts_dir": "out",
            "max_rounds": "3",
            "colour": "blue",
        }
    )

    assert options.protected_names == frozenset({"x", "y"})
    assert options.skip_passes == frozenset({"wrapper_inliner"})
    assert options.artifacts_dir == Path("out")
    assert options.max_rounds == 3
    assert "colour" in caplog.text


def test_load_options_reads_json(tmp_path):
    path = tmp_path / "options.json"
    path.write_text(json.dumps({"reparse_between_groups": False, "only_passes": ["literal_normalizer"]}), encoding="utf-8")

    options = load_options(path)

    assert not options.reparse_between_groups
    assert options.only_passes == frozenset({"literal_normalizer"})
    assert options.as_dict()["only_passes"] == ["literal_normalizer"]


def test_load_options_rejects_non_objects(tmp_path):
    path = tmp_path / "options.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ValueError, match="expected a JSON object"):
        load_options(path)


def test_protected_names_from_environment():
    assert protected_from_env({PROTECTED_ENV: "api, main"}) == frozenset({"api", "main"})
    assert protected_from_env({}) == frozenset()
