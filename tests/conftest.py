"""Test configuration ensuring the project package is importable."""

from __future__ import annotations

import importlib
import sys
from pathlib import Path
from typing import Callable

import pytest

ROOT = Path(__file__).resolve().parent.parent

root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)
else:
    idx = sys.path.index(root_str)
    if idx != 0:
        sys.path.insert(0, sys.path.pop(idx))

# Import the project package eagerly so subsequent imports reuse it
importlib.import_module("jsdeob")

from jsdeob.options import PipelineOptions  # noqa: E402
from jsdeob.pipeline import PipelineOutput, deobfuscate  # noqa: E402


@pytest.fixture
def run_only() -> Callable[..., PipelineOutput]:
    """Run the pipeline restricted to the named passes."""

    def _run(source: str, *names: str, **changes) -> PipelineOutput:
        options = PipelineOptions(only_passes=frozenset(names), **changes)
        return deobfuscate(source, options)

    return _run
