"""Multi-pass deobfuscator for machine-obfuscated JavaScript."""

from __future__ import annotations

from .exceptions import (
    AmbiguousMatch,
    DeobfuscationError,
    InternalInvariantViolation,
    NotClosedForm,
    ParseError,
    PatternNotFound,
    PipelineExecutionError,
)
from .options import PipelineOptions, load_options
from .pipeline import PipelineOutput, deobfuscate
from .report import PassRecord, RunReport

__version__ = "0.1.0"

__all__ = [
    "AmbiguousMatch",
    "DeobfuscationError",
    "InternalInvariantViolation",
    "NotClosedForm",
    "ParseError",
    "PassRecord",
    "PatternNotFound",
    "PipelineExecutionError",
    "PipelineOptions",
    "PipelineOutput",
    "RunReport",
    "deobfuscate",
    "load_options",
]
