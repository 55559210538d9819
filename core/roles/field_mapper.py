"""Map role suffixes to canonical entity attributes with a confidence tier."""

from __future__ import annotations

from dataclasses import dataclass

from core.roles.vocabulary import Vocabulary

EXACT_CONFIDENCE = 1.0
SIMILAR_CONFIDENCE = 0.8
FALLBACK_CONFIDENCE = 0.6


@dataclass(frozen=True)
class FieldSuggestion:
    source_field: str
    confidence: float


class FieldMapper:
    """Look suffixes up in the vocabulary tables.

    Unknown suffixes get no suggestion; the mapper never guesses beyond the
    exact/similar/fallback tiers.
    """

    def __init__(self, vocabulary: Vocabulary) -> None:
        self._vocabulary = vocabulary

    def suggest(self, suffix: str) -> FieldSuggestion | None:
        if not suffix:
            return None

        attribute = self._vocabulary.field_mappings.get(suffix)
        if attribute is None:
            return None

        if self._vocabulary.exact_matches.get(suffix) == attribute:
            confidence = EXACT_CONFIDENCE
        elif self._vocabulary.similar_matches.get(suffix) == attribute:
            confidence = SIMILAR_CONFIDENCE
        else:
            confidence = FALLBACK_CONFIDENCE
        return FieldSuggestion(source_field=attribute, confidence=confidence)
