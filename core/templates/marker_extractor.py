"""Marker extraction over plain text or docx bytes.

Rules:
- A marker is an opening delimiter, a non-empty inner token and a closing delimiter.
- The inner token is whitespace-trimmed; blank tokens are ignored.
- Output keeps first-seen order and counts every occurrence of the exact token.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable, Iterator

from core.templates.duplicate_resolver import resolve_duplicates
from core.templates.models import DEFAULT_DELIMITERS, MarkerDelimiters, MarkerMatch, Variable
from core.templates.name_normalizer import normalize_name
from core.utils.docx_xml import document_text, load_document

_TAG_RE = re.compile(r"<[^>]*>")
_PUNCT_RE = re.compile(r"[^\w\s]")
_SPACE_RE = re.compile(r"\s+")
_UNDERSCORE_RE = re.compile(r"_+")
_LABEL_SPLIT_RE = re.compile(r"[_/\-\s]+")
_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

_MIN_FIELD_NAME_LENGTH = 3

_FIELD_TYPE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("email", ("email", "correo")),
    ("date", ("fecha", "date")),
    ("number", ("monto", "precio", "cantidad", "numero", "amount", "price")),
    (
        "textarea",
        ("descripcion", "observacion", "notas", "comentario", "description", "notes"),
    ),
    ("select", ("tipo", "categoria")),
)

_PATTERN_CACHE: dict[MarkerDelimiters, re.Pattern[str]] = {}


def find_markers(
    text: str, delimiters: MarkerDelimiters = DEFAULT_DELIMITERS
) -> Iterator[MarkerMatch]:
    """Yield every non-blank marker occurrence in `text`, left to right."""

    if not text:
        return

    pattern = _marker_pattern(delimiters)
    for match in pattern.finditer(text):
        inner = match.group(1)
        start = match.start()
        # "{{ a {{b}}" must yield "b", not " a {{b".
        last_open = inner.rfind(delimiters.open)
        if last_open != -1:
            start = match.start(1) + last_open
            inner = inner[last_open + len(delimiters.open) :]
        marker = inner.strip()
        if not marker:
            continue
        yield MarkerMatch(marker=marker, start=start, end=match.end())


def extract_variables(
    text: str,
    delimiters: MarkerDelimiters = DEFAULT_DELIMITERS,
    stop_tokens: Iterable[str] | None = None,
) -> list[Variable]:
    """Extract ordered unique markers with occurrence counts and repeat metadata."""

    counts: Counter[str] = Counter()
    ordered: list[str] = []
    for match in find_markers(text, delimiters):
        if match.marker not in counts:
            ordered.append(match.marker)
        counts[match.marker] += 1

    variables: list[Variable] = []
    used_names: set[str] = set()
    for position, marker in enumerate(ordered, start=1):
        field_name = _unique_name(generate_field_name(marker, position), used_names)
        used_names.add(field_name)
        variables.append(
            Variable(
                marker=marker,
                normalized_name=normalize_name(marker, stop_tokens),
                occurrence_count=counts[marker],
                field_name=field_name,
                field_label=generate_field_label(marker),
                field_type=detect_field_type(marker),
                display_order=position,
            )
        )

    return resolve_duplicates(variables)


def extract_document_text(data: bytes) -> str:
    """Return the searchable text of docx bytes; raises FormatError when unreadable."""

    return document_text(load_document(data))


def extract_document_variables(
    data: bytes,
    delimiters: MarkerDelimiters = DEFAULT_DELIMITERS,
    stop_tokens: Iterable[str] | None = None,
) -> list[Variable]:
    return extract_variables(extract_document_text(data), delimiters, stop_tokens)


def generate_field_name(marker: str, position: int) -> str:
    """Build a storage-safe field name, or field_<position> when too short."""

    cleaned = _TAG_RE.sub("", marker)
    cleaned = _PUNCT_RE.sub("", cleaned).strip().lower()
    cleaned = _SPACE_RE.sub("_", cleaned)
    cleaned = _UNDERSCORE_RE.sub("_", cleaned).strip("_")

    if len(cleaned) >= _MIN_FIELD_NAME_LENGTH:
        return cleaned
    return f"field_{position}"


def generate_field_label(marker: str) -> str:
    """Humanize a marker: split separators and camelCase, capitalize each word."""

    text = _TAG_RE.sub("", marker)
    text = _CAMEL_RE.sub(" ", text)
    words = [word for word in _LABEL_SPLIT_RE.split(text) if word]
    return " ".join(word[:1].upper() + word[1:].lower() for word in words)


def detect_field_type(marker: str) -> str:
    lowered = normalize_name(marker, stop_tokens=())
    for field_type, keywords in _FIELD_TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return field_type
    return "text"


def _unique_name(candidate: str, used: set[str]) -> str:
    if candidate not in used:
        return candidate
    suffix = 2
    while f"{candidate}_{suffix}" in used:
        suffix += 1
    return f"{candidate}_{suffix}"


def _marker_pattern(delimiters: MarkerDelimiters) -> re.Pattern[str]:
    if not delimiters.open or not delimiters.close:
        raise ValueError("Marker delimiters must be non-empty strings")

    pattern = _PATTERN_CACHE.get(delimiters)
    if pattern is None:
        pattern = re.compile(
            re.escape(delimiters.open) + r"(.*?)" + re.escape(delimiters.close)
        )
        _PATTERN_CACHE[delimiters] = pattern
    return pattern
