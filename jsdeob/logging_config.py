"""Logging helpers for console output and per-run debug traces."""

from __future__ import annotations

import logging
from pathlib import Path

__all__ = [
    "DEFAULT_FORMAT",
    "close_debug_logger",
    "configure_debug_file_logger",
    "setup_logging",
]

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: int = logging.INFO) -> None:
    # console threshold stays fixed when a debug trace lowers the logger level
    console = logging.StreamHandler()
    console.setLevel(level)
    logging.basicConfig(level=level, format=DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S", handlers=[console])
    logging.getLogger("jsdeob").setLevel(level)


def _drop_trace_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if getattr(handler, "_jsdeob_debug_trace", False):
            logger.removeHandler(handler)
            handler.close()


def configure_debug_file_logger(
    name: str,
    path: Path,
    *,
    level: int = logging.DEBUG,
    formatter: logging.Formatter | None = None,
    propagate: bool = False,
) -> logging.Logger:
    """Return a logger writing debug traces to ``path``.

    Trace handlers installed by an earlier call on ``name`` are removed first,
    so a new run replaces the previous trace instead of appending to it.  The
    file is written as UTF-8 text.  With ``propagate`` the records still reach
    the console handlers configured by :func:`setup_logging`.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = propagate
    _drop_trace_handlers(logger)

    handler = logging.FileHandler(path, mode="w", encoding="utf-8")
    handler._jsdeob_debug_trace = True  # type: ignore[attr-defined]
    handler.setFormatter(formatter or logging.Formatter(DEFAULT_FORMAT))
    logger.addHandler(handler)
    return logger


def close_debug_logger(logger: logging.Logger) -> None:
    """Tear down handlers installed by :func:`configure_debug_file_logger`."""

    _drop_trace_handlers(logger)
    logger.propagate = True
