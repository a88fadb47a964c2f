"""Structured run report helpers."""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List


@dataclass
class PassRecord:
    """Outcome of one pass within a run."""

    pass_name: str
    group: int
    rewrites: int = 0
    matched: bool = False
    partial: bool = False
    notes: List[str] = field(default_factory=list)
    duration: float = 0.0
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["pass"] = data.pop("pass_name")
        return data


@dataclass
class RunReport:
    """Summarises a single deobfuscation run for maintainers."""

    passes: List[PassRecord] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    input_length: int = 0
    output_length: int = 0

    @property
    def total_rewrites(self) -> int:
        return sum(record.rewrites for record in self.passes)

    def record(self, name: str) -> PassRecord | None:
        for item in self.passes:
            if item.pass_name == name:
                return item
        return None

    def to_text(self) -> str:
        """Format the report as a human-readable summary."""

        lines: List[str] = []
        lines.append(f"Input length: {self.input_length} chars")
        for record in self.passes:
            if record.skipped:
                lines.append(f"[group {record.group}] {record.pass_name}: skipped")
                continue
            status = "matched" if record.matched else "no match"
            if record.partial:
                status += ", partial"
            lines.append(
                f"[group {record.group}] {record.pass_name}: {record.rewrites} rewrites"
                f" ({status}) in {record.duration:.3f}s"
            )
            for note in record.notes:
                lines.append(f"    - {note}")
        lines.append(f"Total rewrites: {self.total_rewrites}")
        if self.warnings:
            lines.append("Warnings:")
            for warning in self.warnings:
                lines.append(f"  - {warning}")
        else:
            lines.append("Warnings: none")
        lines.append(f"Final output length: {self.output_length} chars")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passes": [record.to_dict() for record in self.passes],
            "warnings": list(self.warnings),
            "input_length": self.input_length,
            "output_length": self.output_length,
        }

    def to_json(self, *, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


__all__ = ["PassRecord", "RunReport"]
