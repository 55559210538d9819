"""Build and refresh profiles from template analysis plus live entity data."""

from __future__ import annotations

from typing import Any

from core.entities.sources import EntitySource
from core.profiles.completeness import refresh_profile
from core.profiles.models import FieldMapping, Profile, utc_now
from core.roles.models import RoleGroup, TemplateAnalysis
from core.utils.errors import NotFoundError


class ProfileAutoFiller:
    """Pre-fill profile mappings from an entity source.

    Lookup order for a suggested attribute: the entity's direct attribute, then
    its custom-field bag. Only non-empty values count as auto-filled.
    """

    def __init__(self, entity_source: EntitySource) -> None:
        self._entity_source = entity_source

    def auto_fill(
        self,
        entity_id: str,
        template_id: str,
        analysis: TemplateAnalysis,
        role: str,
        existing: Profile | None = None,
    ) -> Profile:
        """Return a new or refreshed profile for (entity, template, role).

        An existing profile is never mutated: a deep copy is refreshed. Non-empty
        values already present (operator edits or earlier auto-fill) are kept;
        only empty mappings are (re)filled.
        """

        group = analysis.role_group(role)
        if group is None:
            raise NotFoundError(
                f"Role '{role}' not found in template {template_id}",
                available=analysis.roles_detected,
            )

        if self._entity_source.get_record(entity_id) is None:
            raise NotFoundError(f"Entity not found: {entity_id}")

        fresh = self._build_mappings(entity_id, group)

        if existing is None:
            profile = Profile(
                entity_ref=entity_id,
                template_ref=template_id,
                role_in_template=group.role,
                role_label=group.role_label,
                field_mappings=fresh,
            )
        else:
            profile = existing.model_copy(deep=True)
            profile.role_label = group.role_label
            profile.field_mappings = _merge_mappings(profile.field_mappings, fresh)
            profile.updated_at = utc_now()

        return refresh_profile(profile)

    def _build_mappings(self, entity_id: str, group: RoleGroup) -> list[FieldMapping]:
        mappings: list[FieldMapping] = []
        for variable in group.variables:
            suggestion = group.suggestion_for(variable)
            if suggestion is None:
                mappings.append(FieldMapping(template_variable=variable))
                continue

            value = self._lookup(entity_id, suggestion.suggested_source_field)
            mappings.append(
                FieldMapping(
                    template_variable=variable,
                    source_field=suggestion.suggested_source_field,
                    value=value or "",
                    is_auto_filled=bool(value),
                )
            )
        return mappings

    def _lookup(self, entity_id: str, attribute: str) -> str | None:
        value = self._entity_source.get_attribute(entity_id, attribute)
        if _is_empty(value):
            value = self._entity_source.get_custom_field(entity_id, attribute)
        if _is_empty(value):
            return None
        return str(value)


def _merge_mappings(current: list[FieldMapping], fresh: list[FieldMapping]) -> list[FieldMapping]:
    by_variable = {mapping.template_variable: mapping for mapping in current}
    merged: list[FieldMapping] = []
    for candidate in fresh:
        kept = by_variable.get(candidate.template_variable)
        if kept is not None and kept.is_filled:
            if kept.source_field is None and candidate.source_field is not None:
                kept.source_field = candidate.source_field
            merged.append(kept)
        else:
            merged.append(candidate)
    return merged


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")
