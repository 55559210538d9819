"""Link near-identical markers to the first variable sharing their normalized key."""

from __future__ import annotations

from collections import Counter
from dataclasses import replace

from core.templates.models import Variable


def resolve_duplicates(variables: list[Variable]) -> list[Variable]:
    """Return copies of `variables` with repeat metadata resolved in document order.

    The first variable of each normalized key is canonical: it carries the total
    occurrence count of the key. Later variables point at it through a 1-based
    `repeat_source` and count as a single repeat. Variables whose key is empty are
    never linked to each other.
    """

    totals: Counter[str] = Counter()
    for variable in variables:
        totals[variable.normalized_name] += variable.occurrence_count

    canonical_positions: dict[str, int] = {}
    resolved: list[Variable] = []

    for position, variable in enumerate(variables, start=1):
        key = variable.normalized_name
        source = canonical_positions.get(key) if key else None

        if source is None:
            if key:
                canonical_positions[key] = position
            repeat_count = totals[key] if key else variable.occurrence_count
            resolved.append(
                replace(variable, is_repeated=False, repeat_source=None, repeat_count=repeat_count)
            )
            continue

        resolved.append(replace(variable, is_repeated=True, repeat_source=source, repeat_count=1))

    return resolved
