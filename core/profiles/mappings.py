"""Operator edits on profile mappings and value-map export."""

from __future__ import annotations

from collections.abc import Mapping

from core.entities.models import FieldBag
from core.profiles.completeness import refresh_profile
from core.profiles.models import FieldMapping, Profile, Variant, utc_now
from core.utils.errors import ConflictError, NotFoundError, ValidationError


def update_field(
    profile: Profile,
    template_variable: str,
    value: str | None,
    source_field: str | None = None,
) -> Profile:
    """Return a copy of `profile` with one mapping set by the operator."""

    variable = (template_variable or "").strip()
    if not variable:
        raise ValidationError("template_variable is required", field="template_variable")

    updated = profile.model_copy(deep=True)
    mapping = updated.mapping(variable)
    if mapping is None:
        updated.field_mappings.append(
            FieldMapping(
                template_variable=variable,
                source_field=source_field,
                value=value,
                is_auto_filled=False,
            )
        )
    else:
        mapping.value = value
        mapping.is_auto_filled = False
        mapping.last_updated = utc_now()
        if source_field:
            mapping.source_field = source_field

    updated.updated_at = utc_now()
    return refresh_profile(updated)


def to_value_map(profile: Profile, variant_id: str | None = None) -> dict[str, str]:
    """Flatten the mappings used for assembly into marker -> value.

    With an explicit variant id, that active variant is used. Otherwise the
    default active variant, then the first active one, then the profile's own
    mappings when it has no variants at all. The chosen source's
    template_specific_fields then fill markers left absent or empty.
    """

    if variant_id is not None:
        variant = profile.variant(variant_id)
        if variant is None:
            raise NotFoundError(f"Variant not found: {variant_id}")
        if not variant.active:
            raise ConflictError(f"Variant {variant_id} is inactive")
        mappings, extras = variant.field_mappings, variant.template_specific_fields
    elif profile.variants:
        variant = default_variant(profile)
        if variant is None:
            raise ConflictError(f"Profile {profile.id} has no active variant")
        mappings, extras = variant.field_mappings, variant.template_specific_fields
    else:
        mappings, extras = profile.field_mappings, profile.template_specific_fields

    values = {mapping.template_variable: mapping.value or "" for mapping in mappings}
    for key, value in clean_specific_fields(extras).items():
        if not values.get(key):
            values[key] = value
    return values


def clean_specific_fields(fields: Mapping[str, str | None]) -> dict[str, str]:
    """Normalize keys to bare marker text; the first entry wins on collision.

    Keys are trimmed and stripped of marker braces, so "{{ fecha }}" and
    "fecha" name the same marker. None values become "".
    """

    cleaned: dict[str, str] = {}
    for raw_key, raw_value in FieldBag(fields).items():
        key = raw_key.strip().strip("{}").strip()
        if key and key not in cleaned:
            cleaned[key] = "" if raw_value is None else str(raw_value)
    return cleaned


def default_variant(profile: Profile) -> Variant | None:
    active = profile.active_variants
    for variant in active:
        if variant.is_default:
            return variant
    return active[0] if active else None
