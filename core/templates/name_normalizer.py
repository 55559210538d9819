"""Canonical comparison keys for marker text.

The key is used to detect near-identical markers (case, accents, separators and
linking words differ) and as the input of prefix-based role detection.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable

_TAG_RE = re.compile(r"<[^>]*>")
_SEPARATOR_RE = re.compile(r"[\W_]+")

DEFAULT_STOP_TOKENS: frozenset[str] = frozenset(
    {"de", "del", "la", "el", "los", "las", "y", "the", "of"}
)


def normalize_name(text: str | None, stop_tokens: Iterable[str] | None = None) -> str:
    """Return the canonical key for `text`.

    Steps: strip tags, strip diacritics, case-fold, split on any non-word run
    (underscore included), drop stop tokens, join with a single underscore.
    Stop tokens are kept when dropping them would leave an empty key.
    """

    if not text:
        return ""

    stops = DEFAULT_STOP_TOKENS if stop_tokens is None else frozenset(stop_tokens)

    without_tags = _TAG_RE.sub(" ", text)
    decomposed = unicodedata.normalize("NFD", without_tags)
    without_marks = "".join(char for char in decomposed if not unicodedata.combining(char))
    folded = without_marks.casefold()

    tokens = [token for token in _SEPARATOR_RE.split(folded) if token]
    kept = [token for token in tokens if token not in stops]
    return "_".join(kept or tokens)
