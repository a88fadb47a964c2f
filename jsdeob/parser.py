"""Thin wrapper around :mod:`esprima` producing :class:`~jsdeob.tree.SyntaxTree`."""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from typing import Iterator

import esprima

from .exceptions import ParseError
from .tree import SyntaxTree, from_estree

LOG = logging.getLogger(__name__)

# obfuscated bundles nest deeply (long concatenation chains, nested IIFEs)
RECURSION_LIMIT = 20000


@contextmanager
def deep_recursion(limit: int = RECURSION_LIMIT) -> Iterator[None]:
    previous = sys.getrecursionlimit()
    if previous < limit:
        sys.setrecursionlimit(limit)
    try:
        yield
    finally:
        sys.setrecursionlimit(previous)


def parse(source: str) -> SyntaxTree:
    """Parse ``source`` as an ECMAScript script.

    :class:`~jsdeob.exceptions.ParseError` carries the line/column esprima
    reported when available.
    """

    with deep_recursion():
        try:
            program = esprima.parseScript(source)
        except Exception as exc:
            line = getattr(exc, "lineNumber", None)
            column = getattr(exc, "column", None)
            description = getattr(exc, "description", None) or str(exc)
            LOG.debug("esprima rejected input: %s", description)
            raise ParseError(
                f"invalid JavaScript: {description}",
                line=line if isinstance(line, int) else None,
                column=column if isinstance(column, int) else None,
            ) from exc
        tree = from_estree(program)
    LOG.debug("parsed %d characters into %d nodes", len(source), len(tree.nodes))
    return tree


__all__ = ["RECURSION_LIMIT", "deep_recursion", "parse"]
