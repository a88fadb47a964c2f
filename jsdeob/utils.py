"""Filesystem and metadata helpers shared by the driver and the CLI."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, cast

LOG = logging.getLogger(__name__)


def ensure_directory(path: Path) -> None:
    """Create *path* if it does not exist."""

    path.mkdir(parents=True, exist_ok=True)


def write_text(path: str | os.PathLike[str], content: str, *, encoding: str = "utf-8") -> None:
    """Replace ``path`` with ``content``; readers never observe a half-written file."""

    target = Path(path)
    ensure_directory(target.parent)
    with tempfile.NamedTemporaryFile(
        "w", encoding=encoding, dir=target.parent, prefix=f".{target.name}.", delete=False
    ) as handle:
        handle.write(content)
    staged = Path(handle.name)
    try:
        staged.replace(target)
    except OSError:
        staged.unlink(missing_ok=True)
        raise


def write_json(path: str | os.PathLike[str], obj: Any, *, sort_keys: bool = False) -> None:
    write_text(path, json.dumps(obj, ensure_ascii=False, indent=2, sort_keys=sort_keys) + "\n")


def safe_read_file(filepath: str | os.PathLike[str], encoding: str = "utf-8") -> Optional[str]:
    """Read a text file, returning ``None`` (and logging) when it is unusable."""

    path = Path(filepath)
    if not path.is_file():
        LOG.warning("File does not exist or is not a file: '%s'", filepath)
        return None
    try:
        content = path.read_text(encoding=encoding)
    except (OSError, UnicodeDecodeError) as exc:
        LOG.error("Failed to read file '%s': %s", filepath, exc)
        return None
    LOG.debug("Read '%s' (%d characters)", filepath, len(content))
    return content


def serialise_metadata(value: Any) -> Any:
    """Return a JSON-serialisable representation of ``value``."""

    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple, set, frozenset)):
        items = sorted(value) if isinstance(value, (set, frozenset)) else value
        return [serialise_metadata(item) for item in items]
    if isinstance(value, Mapping):
        return {str(key): serialise_metadata(item) for key, item in value.items()}
    if isinstance(value, Path):
        return str(value)
    if is_dataclass(value) and not isinstance(value, type):
        data = asdict(cast(Any, value))
        return {str(key): serialise_metadata(item) for key, item in data.items()}
    return repr(value)


def summarise_metadata(metadata: Mapping[str, Any]) -> Dict[str, Any]:
    return {str(key): serialise_metadata(value) for key, value in metadata.items()}


def format_pass_summary(results: Sequence[Tuple[str, float]]) -> str:
    """Format ``results`` as a small table for console output."""

    if not results:
        return ""
    name_width = max(len(name) for name, _ in results)
    lines = [f"{'Pass'.ljust(name_width)}  Duration"]
    for name, duration in results:
        lines.append(f"{name.ljust(name_width)}  {duration:.3f}s")
    return "\n".join(lines)


__all__ = [
    "ensure_directory",
    "format_pass_summary",
    "safe_read_file",
    "serialise_metadata",
    "summarise_metadata",
    "write_json",
    "write_text",
]
