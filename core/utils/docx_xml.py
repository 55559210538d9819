"""Utilities for docx package and paragraph operations.

All python-docx traversal used by extraction and assembly lives here so both
sides see exactly the same paragraphs and the same run text.
"""

from __future__ import annotations

import io
import zipfile
import zlib
from collections.abc import Iterator

from docx import Document
from docx.document import Document as DocxDocument
from docx.opc.exceptions import PackageNotFoundError
from docx.oxml.ns import qn
from docx.text.paragraph import Paragraph
from docx.text.run import Run

from core.utils.errors import FormatError

_P = qn("w:p")
_R = qn("w:r")
# Alternate renderings of the same drawing; only mc:Choice is read.
_MC_FALLBACK = "{http://schemas.openxmlformats.org/markup-compatibility/2006}Fallback"

_HEADER_FOOTER_SLOTS = (
    ("header", "header"),
    ("first_page_header", "first_header"),
    ("even_page_header", "even_header"),
    ("footer", "footer"),
    ("first_page_footer", "first_footer"),
    ("even_page_footer", "even_footer"),
)


def load_document(data: bytes) -> DocxDocument:
    """Open docx bytes without touching the caller's buffer."""

    if not data:
        raise FormatError("Template bytes are empty")

    try:
        return Document(io.BytesIO(bytes(data)))
    except (
        zipfile.BadZipFile,
        zlib.error,
        EOFError,
        PackageNotFoundError,
        KeyError,
        ValueError,
        SyntaxError,
    ) as exc:
        raise FormatError(f"Template is not a readable docx package: {exc}") from exc


def save_document(document: DocxDocument) -> bytes:
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def iter_document_paragraphs(document: DocxDocument) -> Iterator[tuple[str, Paragraph]]:
    """Yield (path, paragraph) for the body, then headers and footers.

    Every w:p element is visited in document order, so table cells at any
    depth, block content controls and text boxes are included. Paths are
    p{i} for the body and s{section}.{slot}.p{i} for header and footer parts.
    Header and footer parts shared between sections are yielded once.
    """

    body = document._body
    yield from _iter_part(body._element, body, "")

    seen: set[object] = set()
    for section_index, section in enumerate(document.sections):
        for attribute, slot in _HEADER_FOOTER_SLOTS:
            part = getattr(section, attribute)
            if part.is_linked_to_previous:
                continue
            element = part._element
            if element in seen:
                continue
            seen.add(element)
            yield from _iter_part(element, part, f"s{section_index}.{slot}.")


def paragraph_runs(paragraph: Paragraph) -> list[Run]:
    """Return the runs a paragraph owns, including those nested in hyperlinks,
    inline content controls, tracked insertions and simple fields.

    Runs that belong to a text box paragraph inside this one are not returned;
    that paragraph is visited on its own.
    """

    return [Run(r, paragraph) for r in _owned_runs(paragraph._p)]


def paragraph_run_texts(paragraph: Paragraph) -> list[str]:
    return [run.text or "" for run in paragraph_runs(paragraph)]


def document_text(document: DocxDocument) -> str:
    """Join the run text of every traversed paragraph with newlines."""

    return "\n".join(
        "".join(paragraph_run_texts(paragraph))
        for _, paragraph in iter_document_paragraphs(document)
    )


def _iter_part(element, parent, prefix: str) -> Iterator[tuple[str, Paragraph]]:
    index = 0
    for p in element.iter(_P):
        if next(p.iterancestors(_MC_FALLBACK), None) is not None:
            continue
        yield f"{prefix}p{index}", Paragraph(p, parent)
        index += 1


def _owned_runs(element) -> Iterator:
    for child in element.iterchildren():
        if child.tag == _R:
            yield child
        elif child.tag in (_P, _MC_FALLBACK):
            continue
        else:
            yield from _owned_runs(child)
