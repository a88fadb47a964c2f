"""Custom exception hierarchy for the deobfuscator."""

from __future__ import annotations

from typing import List, Optional, Tuple


class DeobfuscationError(Exception):
    """Base class for all deobfuscation related errors."""


class ParseError(DeobfuscationError):
    """Raised when source text is not valid JavaScript in the supported grammar."""

    def __init__(self, message: str, *, line: Optional[int] = None, column: Optional[int] = None) -> None:
        super().__init__(message)
        self.line = line
        self.column = column


class PatternNotFound(DeobfuscationError):
    """Raised when a mandatory pass finds no instance of its idiom."""

    def __init__(self, pass_name: str, message: str | None = None) -> None:
        super().__init__(message or f"pattern for pass '{pass_name}' not found")
        self.pass_name = pass_name


class AmbiguousMatch(DeobfuscationError):
    """A construct resembles an idiom but the rewrite cannot be proven safe."""


class NotClosedForm(AmbiguousMatch):
    """Raised by the evaluator when an expression depends on runtime state."""


class InternalInvariantViolation(DeobfuscationError):
    """A pass emitted a structurally invalid tree or a dangling reference."""


class PipelineExecutionError(DeobfuscationError):
    """Wraps a fatal error together with the stage that produced it."""

    def __init__(
        self,
        stage: str,
        cause: BaseException,
        *,
        timings: Optional[List[Tuple[str, float]]] = None,
        duration: float = 0.0,
    ) -> None:
        super().__init__(f"stage '{stage}' failed: {cause}")
        self.stage = stage
        self.cause = cause
        self.timings = list(timings or [])
        self.duration = duration

    @property
    def pass_name(self) -> str:
        return self.stage


__all__ = [
    "AmbiguousMatch",
    "DeobfuscationError",
    "InternalInvariantViolation",
    "NotClosedForm",
    "ParseError",
    "PatternNotFound",
    "PipelineExecutionError",
]
