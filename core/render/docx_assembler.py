"""Docx assembler for run-aware marker substitution."""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from typing import Any

from docx.text.run import Run

from core.render.models import (
    AssemblyResult,
    AssemblySummary,
    AssemblyWarning,
    MissingPolicy,
)
from core.templates.marker_extractor import find_markers
from core.templates.models import DEFAULT_DELIMITERS, MarkerDelimiters, MarkerMatch
from core.utils.docx_xml import (
    iter_document_paragraphs,
    load_document,
    paragraph_runs,
    save_document,
)
from core.utils.errors import AssemblyError


def assemble_document(
    template_bytes: bytes,
    value_map: Mapping[str, Any],
    delimiters: MarkerDelimiters = DEFAULT_DELIMITERS,
    missing_policy: MissingPolicy = "empty",
) -> AssemblyResult:
    """Substitute `value_map` into a copy of the template.

    A marker split across runs is rewritten into the run holding its opening
    delimiter, so that run's formatting carries the value. Markers absent from
    the map are blanked ("empty") or left as-is ("keep"); both are warned.
    """

    if missing_policy not in {"empty", "keep"}:
        raise ValueError(f"Unsupported missing policy: {missing_policy}")

    document = load_document(template_bytes)
    values = normalize_value_map(value_map, delimiters)

    seen: Counter[str] = Counter()
    missing: Counter[str] = Counter()
    replaced_count = 0

    for path, paragraph in iter_document_paragraphs(document):
        runs = paragraph_runs(paragraph)
        texts = [run.text or "" for run in runs]
        full_text = "".join(texts)
        if delimiters.open not in full_text:
            continue

        matches = list(find_markers(full_text, delimiters))
        if not matches:
            continue

        edits: list[tuple[MarkerMatch, str]] = []
        for match in matches:
            seen[match.marker] += 1
            if match.marker in values:
                edits.append((match, values[match.marker]))
                replaced_count += 1
                continue
            missing[match.marker] += 1
            if missing_policy == "empty":
                edits.append((match, ""))

        if edits:
            _apply_edits(runs, texts, edits, path)

    warnings = [
        AssemblyWarning(
            marker=marker,
            message=f"No value for marker '{marker}'",
            occurrences=count,
        )
        for marker, count in missing.items()
    ]
    summary = AssemblySummary(
        total_markers=sum(seen.values()),
        replaced_count=replaced_count,
        missing_count=sum(missing.values()),
        missing_policy=missing_policy,
    )
    return AssemblyResult(
        output_bytes=save_document(document),
        warnings=warnings,
        summary=summary,
        missing_markers=list(missing.keys()),
    )


def normalize_value_map(
    value_map: Mapping[str, Any], delimiters: MarkerDelimiters = DEFAULT_DELIMITERS
) -> dict[str, str]:
    """Key by trimmed inner marker text; None becomes "". First key wins."""

    values: dict[str, str] = {}
    for raw_key, raw_value in value_map.items():
        key = str(raw_key).strip()
        if (
            key.startswith(delimiters.open)
            and key.endswith(delimiters.close)
            and len(key) > len(delimiters.open) + len(delimiters.close)
        ):
            key = key[len(delimiters.open) : -len(delimiters.close)].strip()
        if not key or key in values:
            continue
        values[key] = "" if raw_value is None else str(raw_value)
    return values


def _apply_edits(
    runs: list[Run],
    texts: list[str],
    edits: list[tuple[MarkerMatch, str]],
    path: str,
) -> None:
    offsets: list[int] = []
    cursor = 0
    for text in texts:
        offsets.append(cursor)
        cursor += len(text)

    updated = list(texts)
    # Right to left keeps earlier offsets valid.
    for match, replacement in sorted(edits, key=lambda item: item[0].start, reverse=True):
        try:
            start_run = _run_index(offsets, texts, match.start)
            end_run = _run_index(offsets, texts, match.end - 1)
            head = match.start - offsets[start_run]
            tail = match.end - offsets[end_run]
            if start_run == end_run:
                current = updated[start_run]
                updated[start_run] = current[:head] + replacement + current[tail:]
            else:
                updated[start_run] = updated[start_run][:head] + replacement
                for index in range(start_run + 1, end_run):
                    updated[index] = ""
                updated[end_run] = updated[end_run][tail:]
        except (IndexError, ValueError) as exc:
            raise AssemblyError(
                f"Failed to substitute marker '{match.marker}' at {path}: {exc}",
                marker=match.marker,
            ) from exc

    for run, before, after in zip(runs, texts, updated, strict=True):
        if before != after:
            run.text = after


def _run_index(offsets: list[int], texts: list[str], position: int) -> int:
    for index in range(len(offsets) - 1, -1, -1):
        if offsets[index] <= position and texts[index]:
            if position < offsets[index] + len(texts[index]):
                return index
    raise IndexError(f"offset {position} outside paragraph runs")
