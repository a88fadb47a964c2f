"""Pass modules orchestrated by :mod:`jsdeob.pipeline`."""

from __future__ import annotations

from . import (
    array_builder,
    control_flow_unflattener,
    literal_normalizer,
    state_machine_solver,
    string_array_inliner,
    string_array_solver,
    wrapper_inliner,
)
from .base import FailurePolicy, PassContext, PassResult, PassSpec, PipelineState

__all__ = [
    "FailurePolicy",
    "PassContext",
    "PassResult",
    "PassSpec",
    "PipelineState",
    "array_builder",
    "control_flow_unflattener",
    "literal_normalizer",
    "state_machine_solver",
    "string_array_inliner",
    "string_array_solver",
    "wrapper_inliner",
]
