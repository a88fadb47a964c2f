"""Per-run configuration for the pipeline."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

LOG = logging.getLogger(__name__)

PROTECTED_ENV = "JSDEOB_PROTECTED"


def _name_set(value: Any) -> FrozenSet[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        items: Iterable[Any] = value.split(",")
    else:
        items = value
    return frozenset(str(item).strip() for item in items if str(item).strip())


@dataclass(frozen=True)
class PipelineOptions:
    """Knobs shared by the driver and every pass.

    ``protected_names`` lists identifiers an external consumer looks up by
    name; passes never inline or delete their bindings.
    """

    protected_names: FrozenSet[str] = frozenset()
    reparse_between_groups: bool = True
    artifacts_dir: Optional[Path] = None
    persist_path: Optional[Path] = None
    max_rounds: int = 8
    max_dispatch_states: int = 512
    rotation_step_budget: int = 1_000_000
    skip_passes: FrozenSet[str] = frozenset()
    only_passes: FrozenSet[str] = frozenset()

    def __post_init__(self) -> None:
        if self.max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        if self.max_dispatch_states < 1:
            raise ValueError("max_dispatch_states must be at least 1")
        if self.rotation_step_budget < 1:
            raise ValueError("rotation_step_budget must be at least 1")

    def is_protected(self, name: Optional[str]) -> bool:
        return name is not None and name in self.protected_names

    def with_protected(self, names: Iterable[str]) -> "PipelineOptions":
        merged = frozenset(self.protected_names) | _name_set(list(names))
        return _replace(self, protected_names=merged)

    def with_changes(self, **changes: Any) -> "PipelineOptions":
        return _replace(self, **changes)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PipelineOptions":
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            LOG.warning("ignoring unknown option(s): %s", ", ".join(unknown))
        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                continue
            if key in ("protected_names", "skip_passes", "only_passes"):
                values[key] = _name_set(value)
            elif key in ("artifacts_dir", "persist_path"):
                values[key] = Path(value) if value else None
            elif key in ("max_rounds", "max_dispatch_states", "rotation_step_budget"):
                values[key] = int(value)
            elif key == "reparse_between_groups":
                values[key] = bool(value)
        return cls(**values)

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("protected_names", "skip_passes", "only_passes"):
            data[key] = sorted(data[key])
        for key in ("artifacts_dir", "persist_path"):
            data[key] = str(data[key]) if data[key] is not None else None
        return data


def _replace(options: PipelineOptions, **changes: Any) -> PipelineOptions:
    data = {item.name: getattr(options, item.name) for item in fields(options)}
    data.update(changes)
    return PipelineOptions(**data)


def load_options(path: Path) -> PipelineOptions:
    """Read options from a JSON object stored at ``path``."""

    with Path(path).open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object")
    return PipelineOptions.from_mapping(data)


def protected_from_env(environ: Optional[Mapping[str, str]] = None) -> FrozenSet[str]:
    env = os.environ if environ is None else environ
    return _name_set(env.get(PROTECTED_ENV, ""))


__all__ = ["PROTECTED_ENV", "PipelineOptions", "load_options", "protected_from_env"]
