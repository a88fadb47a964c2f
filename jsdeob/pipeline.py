"""Pass-based orchestration for the deobfuscation pipeline."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from . import utils
from .exceptions import (
    DeobfuscationError,
    InternalInvariantViolation,
    ParseError,
    PipelineExecutionError,
)
from .options import PipelineOptions
from .parser import deep_recursion, parse
from .passes import (
    array_builder,
    control_flow_unflattener,
    literal_normalizer,
    state_machine_solver,
    string_array_inliner,
    string_array_solver,
    wrapper_inliner,
)
from .passes.base import FailurePolicy, PassSpec, PipelineState
from .printer import generate
from .report import PassRecord, RunReport
from .scope import analyze
from .tree import SyntaxTree
from .utils import write_text

LOG = logging.getLogger(__name__)

PassFn = Callable[["Context"], None]
ProgressFn = Callable[[str], None]

GROUP_TITLES = {
    1: "Literal Normalization and Control-Flow Unflattening",
    2: "Array Builders and Wrapper Functions",
    3: "String Tables and State Machines",
    4: "String Table Inlining",
}


@dataclass
class Context:
    """Shared state threaded through the pipeline passes."""

    source: str
    options: PipelineOptions = field(default_factory=PipelineOptions)
    tree: Optional[SyntaxTree] = None
    state: PipelineState = field(default_factory=PipelineState)
    report: RunReport = field(default_factory=RunReport)
    artifacts: Optional[Path] = None
    pass_metadata: Dict[str, Any] = field(default_factory=dict)
    output: str = ""
    progress: Optional[ProgressFn] = None

    def __post_init__(self) -> None:
        if self.artifacts is None and self.options.artifacts_dir is not None:
            self.artifacts = Path(self.options.artifacts_dir)
        if self.artifacts:
            utils.ensure_directory(self.artifacts)
        self.report.input_length = len(self.source)

    def announce(self, message: str) -> None:
        if self.progress is not None:
            self.progress(message)
        else:
            LOG.info("%s", message)

    def record_metadata(self, name: str, metadata: Dict[str, Any]) -> None:
        summary = utils.summarise_metadata(metadata)
        self.pass_metadata[name] = summary
        if self.artifacts:
            utils.ensure_directory(self.artifacts)
            utils.write_json(self.artifacts / f"{name}.json", summary, sort_keys=True)

    def write_artifact(self, name: str, content: str, *, extension: str = ".js") -> None:
        if not self.artifacts or not content:
            return
        utils.ensure_directory(self.artifacts)
        safe_name = name.replace(" ", "_")
        write_text(self.artifacts / f"{safe_name}{extension}", content)


@dataclass
class PipelineOutput:
    code: str
    report: RunReport


class PassRegistry:
    def __init__(self) -> None:
        self._passes: Dict[str, Tuple[int, PassFn]] = {}

    def register_pass(self, name: str, fn: PassFn, order: int) -> None:
        self._passes[name] = (order, fn)

    def names(self) -> List[str]:
        return [name for _, name in sorted((order, name) for name, (order, _) in self._passes.items())]

    def run_passes(
        self,
        ctx: Context,
        skip: Optional[Iterable[str]] = None,
        only: Optional[Iterable[str]] = None,
        profile: bool = False,
    ) -> List[Tuple[str, float]]:
        selected: List[Tuple[int, str, PassFn]] = []
        skip_set = {name.strip() for name in (skip or []) if name}
        only_set = {name.strip() for name in (only or []) if name}

        for name, (order, fn) in self._passes.items():
            if skip_set and name in skip_set:
                continue
            if only_set and name not in only_set:
                continue
            selected.append((order, name, fn))
        selected.sort()

        timings: List[Tuple[str, float]] = []
        started = time.perf_counter()
        for _, name, fn in selected:
            start = time.perf_counter()
            try:
                fn(ctx)
            except PipelineExecutionError:
                raise
            except Exception as exc:
                raise PipelineExecutionError(
                    name,
                    exc,
                    timings=timings,
                    duration=time.perf_counter() - started,
                ) from exc
            duration = time.perf_counter() - start
            timings.append((name, duration))
            record = ctx.report.record(name)
            if record is not None:
                record.duration = duration
            metadata = ctx.pass_metadata.get(name)
            summary_parts: List[str] = []
            if isinstance(metadata, dict):
                rewrites = metadata.get("rewrites")
                notes = metadata.get("notes")
                if isinstance(rewrites, int):
                    summary_parts.append(f"rewrites={rewrites}")
                if isinstance(notes, list) and notes:
                    summary_parts.append(f"skipped={len(notes)}")
            suffix = f" ({', '.join(summary_parts)})" if summary_parts else ""
            LOG.info("pass %s completed in %.3fs%s", name, duration, suffix)
        if profile and timings:
            LOG.info("pass timings:\n%s", utils.format_pass_summary(timings))
        return timings


PASS_SPECS: Tuple[PassSpec, ...] = (
    PassSpec("literal_normalizer", 1, 10, literal_normalizer.run, "non-canonical literal"),
    PassSpec("control_flow_unflattener", 1, 20, control_flow_unflattener.run, "integer dispatcher loop"),
    PassSpec("array_builder", 2, 30, array_builder.run, "array builder sequence"),
    PassSpec("wrapper_inliner", 2, 40, wrapper_inliner.run, "wrapper function"),
    PassSpec("string_array_solver", 3, 50, string_array_solver.run, "string table"),
    PassSpec("state_machine_solver", 3, 60, state_machine_solver.run, "string-keyed dispatcher"),
    PassSpec("string_array_inliner", 4, 70, string_array_inliner.run, "string table lookup"),
)

SPECS_BY_NAME: Dict[str, PassSpec] = {spec.name: spec for spec in PASS_SPECS}


def _free_names(tree: SyntaxTree) -> set:
    return analyze(tree).free_names()


def _apply(ctx: Context, spec: PassSpec) -> None:
    if ctx.tree is None:
        raise InternalInvariantViolation("pipeline has no tree to transform")
    before = _free_names(ctx.tree)
    result = spec.apply(ctx.tree, ctx.options, ctx.state)
    result.tree.validate()
    introduced = _free_names(result.tree) - before
    if introduced:
        raise InternalInvariantViolation(
            f"pass {spec.name} left unresolved identifiers: {', '.join(sorted(introduced))}"
        )
    if result.failure is not None:
        if spec.policy is FailurePolicy.MANDATORY:
            raise result.failure
        LOG.debug("%s", result.failure)
    ctx.tree = result.tree.compact()
    ctx.report.passes.append(
        PassRecord(
            pass_name=spec.name,
            group=spec.group,
            rewrites=result.rewrites,
            matched=result.matched,
            partial=result.partial,
            notes=list(result.notes),
        )
    )
    if result.partial:
        ctx.report.warnings.append(f"{spec.name}: {len(result.notes)} occurrence(s) left untouched")
    metadata: Dict[str, Any] = {
        "rewrites": result.rewrites,
        "matched": result.matched,
        "partial": result.partial,
        "notes": list(result.notes),
    }
    metadata.update(result.details)
    ctx.record_metadata(spec.name, metadata)


def _pass_runner(spec: PassSpec) -> PassFn:
    def run(ctx: Context) -> None:
        _apply(ctx, spec)

    run.__name__ = f"_pass_{spec.name}"
    return run


PIPELINE = PassRegistry()
for _spec in PASS_SPECS:
    PIPELINE.register_pass(_spec.name, _pass_runner(_spec), _spec.order)


def _selected(options: PipelineOptions) -> List[PassSpec]:
    known = set(SPECS_BY_NAME)
    for name in sorted((options.skip_passes | options.only_passes) - known):
        LOG.warning("unknown pass name %r ignored", name)
    chosen: List[PassSpec] = []
    for spec in sorted(PASS_SPECS, key=lambda item: item.order):
        if spec.name in options.skip_passes:
            continue
        if options.only_passes and spec.name not in options.only_passes:
            continue
        chosen.append(spec)
    return chosen


def _finish_group(ctx: Context, group: int) -> None:
    if ctx.tree is None:
        raise InternalInvariantViolation(f"group {group} finished without a tree")
    code = generate(ctx.tree)
    ctx.write_artifact(f"group{group}", code)
    if ctx.options.persist_path is not None:
        write_text(ctx.options.persist_path, code)
    if ctx.options.reparse_between_groups:
        try:
            ctx.tree = parse(code)
        except ParseError as exc:
            raise PipelineExecutionError(f"group {group}", exc) from exc
    ctx.output = code


def run_pipeline(ctx: Context, *, profile: bool = False) -> List[Tuple[str, float]]:
    """Parse ``ctx.source`` and run every selected pass group over it."""

    started = time.perf_counter()
    try:
        ctx.tree = parse(ctx.source)
    except ParseError as exc:
        raise PipelineExecutionError("parse", exc, duration=time.perf_counter() - started) from exc
    ctx.output = generate(ctx.tree)

    selected = _selected(ctx.options)
    chosen = {spec.name for spec in selected}
    for spec in PASS_SPECS:
        if spec.name not in chosen:
            ctx.report.passes.append(PassRecord(pass_name=spec.name, group=spec.group, skipped=True))

    timings: List[Tuple[str, float]] = []
    for group in sorted({spec.group for spec in selected}):
        names = [spec.name for spec in selected if spec.group == group]
        ctx.announce(f"--- Starting Pass {group}: {GROUP_TITLES.get(group, 'Pass Group')} ---")
        try:
            with deep_recursion():
                timings.extend(PIPELINE.run_passes(ctx, only=names, profile=profile))
        except PipelineExecutionError as exc:
            exc.timings = timings + exc.timings
            exc.duration = time.perf_counter() - started
            raise
        _finish_group(ctx, group)
        ctx.announce(f"Pass {group} complete.")

    ctx.report.passes.sort(key=lambda record: SPECS_BY_NAME[record.pass_name].order)
    ctx.report.output_length = len(ctx.output)
    LOG.info(
        "pipeline finished in %.3fs (%d rewrites)",
        time.perf_counter() - started,
        ctx.report.total_rewrites,
    )
    return timings


def deobfuscate(
    source: str,
    options: Optional[PipelineOptions] = None,
    *,
    progress: Optional[ProgressFn] = None,
) -> PipelineOutput:
    """Run the full pipeline over ``source`` and return the simplified text."""

    ctx = Context(source=source, options=options or PipelineOptions(), progress=progress)
    run_pipeline(ctx)
    return PipelineOutput(code=ctx.output, report=ctx.report)


__all__ = [
    "Context",
    "DeobfuscationError",
    "GROUP_TITLES",
    "PASS_SPECS",
    "PIPELINE",
    "PassRegistry",
    "PipelineExecutionError",
    "PipelineOutput",
    "deobfuscate",
    "run_pipeline",
]
