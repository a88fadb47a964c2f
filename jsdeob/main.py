"""Command line interface for running the deobfuscation pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from . import utils
from .exceptions import DeobfuscationError
from .logging_config import close_debug_logger, configure_debug_file_logger, setup_logging
from .options import PipelineOptions, load_options, protected_from_env
from .pipeline import Context, run_pipeline

LOG = logging.getLogger(__name__)

DEFAULT_INPUT = "input.txt"
DEFAULT_OUTPUT = "output.js"


def _split_names(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jsdeob",
        description="Simplify machine-obfuscated JavaScript one pass group at a time",
    )
    parser.add_argument("input", nargs="?", default=DEFAULT_INPUT, help=f"obfuscated source (default: {DEFAULT_INPUT})")
    parser.add_argument(
        "output",
        nargs="?",
        default=DEFAULT_OUTPUT,
        help=f"where the simplified source is written (default: {DEFAULT_OUTPUT})",
    )
    parser.add_argument(
        "--protect",
        action="append",
        default=[],
        metavar="NAME",
        help="identifier that must never be inlined or removed (repeatable)",
    )
    parser.add_argument("--config", help="JSON file with pipeline options")
    parser.add_argument("--write-artifacts", metavar="DIR", help="write per-group source and per-pass metadata to DIR")
    parser.add_argument(
        "--in-memory",
        action="store_true",
        help="keep the tree between pass groups instead of printing and re-parsing",
    )
    parser.add_argument("--report-json", metavar="FILE", help="write the run report as JSON")
    parser.add_argument("--skip-passes", help="comma separated list of passes to skip")
    parser.add_argument("--only-passes", help="comma separated list of passes to run exclusively")
    parser.add_argument("--profile", action="store_true", help="print pass timings to stdout")
    parser.add_argument("--verbose", action="store_true", help="enable debug logging")
    parser.add_argument("--debug-log", metavar="FILE", help="write a debug trace of the run to FILE")
    return parser


def _options_from_args(args: argparse.Namespace) -> PipelineOptions:
    options = load_options(Path(args.config)) if args.config else PipelineOptions()
    changes = {}
    if args.write_artifacts:
        changes["artifacts_dir"] = Path(args.write_artifacts)
    if args.in_memory:
        changes["reparse_between_groups"] = False
    skip = _split_names(args.skip_passes)
    if skip:
        changes["skip_passes"] = frozenset(skip)
    only = _split_names(args.only_passes)
    if only:
        changes["only_passes"] = frozenset(only)
    changes["persist_path"] = Path(args.output)
    options = options.with_changes(**changes)
    protected = list(protected_from_env())
    for value in args.protect:
        protected.extend(_split_names(value))
    return options.with_protected(protected)


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    setup_logging(logging.DEBUG if args.verbose else logging.WARNING)
    trace = configure_debug_file_logger("jsdeob", Path(args.debug_log), propagate=True) if args.debug_log else None
    try:
        return _run(args)
    finally:
        if trace is not None:
            close_debug_logger(trace)


def _run(args: argparse.Namespace) -> int:
    try:
        options = _options_from_args(args)
    except (OSError, ValueError) as exc:
        LOG.error("invalid configuration: %s", exc)
        return 2

    source = utils.safe_read_file(args.input)
    if source is None:
        print(f"Could not read input file: {args.input}", file=sys.stderr)
        return 2

    ctx = Context(source=source, options=options, progress=print)
    try:
        timings = run_pipeline(ctx, profile=args.profile)
    except DeobfuscationError as exc:
        LOG.error("deobfuscation failed: %s", exc)
        print(f"Deobfuscation failed: {exc}", file=sys.stderr)
        return 1

    utils.write_text(args.output, ctx.output)
    if args.report_json:
        utils.write_json(args.report_json, ctx.report.to_dict())
    print(ctx.report.to_text())
    if args.profile and timings:
        print(utils.format_pass_summary(timings))
    print(f"Wrote {args.output}")
    return 0


if __name__ == "__main__":  # pragma: no cover - manual invocation
    sys.exit(main())
