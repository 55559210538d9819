"""CLI I/O helpers for atomic output writing."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from core.render.models import AssemblyResult, GeneratedDocument


@dataclass(frozen=True)
class OutputPaths:
    """Fixed output artifact paths for single assembly."""

    docx: Path
    report: Path


def build_output_paths(out_dir: Path) -> OutputPaths:
    """Build fixed output file paths under out_dir."""

    return OutputPaths(
        docx=out_dir / "out.docx",
        report=out_dir / "out.assembly_report.json",
    )


def existing_output_files(paths: OutputPaths) -> list[Path]:
    """Return existing output files among fixed artifact paths."""

    return [path for path in (paths.docx, paths.report) if path.exists()]


def load_json_object(path: Path) -> dict[str, Any]:
    """Read a JSON object file (value maps, overrides)."""

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a JSON object")
    return raw


def write_assembly_output_atomic(paths: OutputPaths, result: AssemblyResult) -> None:
    """Write the docx and its report atomically using temporary files + replace."""

    paths.docx.parent.mkdir(parents=True, exist_ok=True)
    _atomic_write_bytes(paths.docx, result.output_bytes)
    _atomic_write_json(paths.report, result.model_dump(mode="json", exclude={"output_bytes"}))


def write_generated_output_atomic(paths: OutputPaths, generated: GeneratedDocument) -> None:
    paths.docx.parent.mkdir(parents=True, exist_ok=True)
    _atomic_write_bytes(paths.docx, generated.output_bytes)
    _atomic_write_json(paths.report, generated.model_dump(mode="json", exclude={"output_bytes"}))


def _atomic_write_json(path: Path, payload: dict[str, Any]) -> None:
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        delete=False,
        prefix=f"{path.name}.",
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        json.dump(payload, tmp, ensure_ascii=False, sort_keys=True, separators=(",", ":"))

    tmp_path.replace(path)


def _atomic_write_bytes(path: Path, data: bytes) -> None:
    fd, raw_tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f"{path.name}.",
        suffix=".tmp",
    )
    os.close(fd)
    tmp_path = Path(raw_tmp_path)

    try:
        tmp_path.write_bytes(data)
        tmp_path.replace(path)
    except Exception:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
        raise
