"""Prefix-based role classification of normalized marker names.

Role table order is the tie-break: a name matching prefixes of several roles
(for example "comprador_" under both "cliente" and "comprador") is assigned to
the role listed first in the vocabulary. The result is deterministic for a given
vocabulary file.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from core.roles.vocabulary import Vocabulary
from core.templates.models import Variable

_SEPARATOR = "_"


@dataclass(frozen=True)
class RoleMatch:
    """Matched role, the prefix that matched and the remaining suffix."""

    role: str
    prefix: str
    suffix: str


@dataclass
class Classification:
    """Variables grouped by role in first-seen order, plus the unclassified rest."""

    groups: dict[str, list[Variable]] = field(default_factory=dict)
    matches: dict[str, RoleMatch] = field(default_factory=dict)
    unclassified: list[Variable] = field(default_factory=list)
    total: int = 0

    @property
    def classified_count(self) -> int:
        return self.total - len(self.unclassified)

    @property
    def classification_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.classified_count / self.total


class RoleClassifier:
    """Assign roles to variables from the vocabulary's prefix table."""

    def __init__(self, vocabulary: Vocabulary) -> None:
        self._vocabulary = vocabulary

    def match(self, normalized_name: str) -> RoleMatch | None:
        if not normalized_name:
            return None

        for role in self._vocabulary.roles:
            for prefix in role.prefixes:
                if normalized_name == prefix:
                    return RoleMatch(role=role.code, prefix=prefix, suffix="")
                if normalized_name.startswith(prefix + _SEPARATOR):
                    return RoleMatch(
                        role=role.code,
                        prefix=prefix,
                        suffix=normalized_name[len(prefix) + len(_SEPARATOR) :],
                    )
        return None

    def classify(self, variables: list[Variable]) -> Classification:
        result = Classification(total=len(variables))

        for variable in variables:
            role_match = self.match(variable.normalized_name)
            if role_match is None:
                result.unclassified.append(variable)
                continue
            result.groups.setdefault(role_match.role, []).append(variable)
            result.matches[variable.marker] = role_match

        return result

    def role_label(self, code: str) -> str:
        return self._vocabulary.role_label(code)
