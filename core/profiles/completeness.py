"""Completeness accounting for profiles and variants."""

from __future__ import annotations

from core.profiles.models import Completeness, FieldMapping, Profile, Variant


def compute_completeness(mappings: list[FieldMapping]) -> Completeness:
    """Every mapping is required; a mapping is filled when its value is non-empty."""

    required = [mapping for mapping in mappings if mapping.template_variable]
    missing = [mapping.template_variable for mapping in required if not mapping.is_filled]
    filled = len(required) - len(missing)

    return Completeness(
        required_fields_count=len(required),
        filled_fields_count=filled,
        percentage=_percentage(filled, len(required)),
        missing_fields=missing,
    )


def refresh_variant(variant: Variant) -> Variant:
    variant.completeness = compute_completeness(variant.field_mappings)
    return variant


def refresh_profile(profile: Profile) -> Profile:
    """Recompute variant and profile completeness in place.

    With variants, the profile percentage is the rounded mean of the active
    variants' percentages and missing fields are their union in first-seen order.
    Without variants, the profile's own mappings are the implicit single variant.
    """

    for variant in profile.variants:
        refresh_variant(variant)

    if not profile.variants:
        profile.completeness = compute_completeness(profile.field_mappings)
    else:
        active = profile.active_variants
        if not active:
            profile.completeness = Completeness()
        else:
            missing: list[str] = []
            for variant in active:
                for name in variant.completeness.missing_fields:
                    if name not in missing:
                        missing.append(name)
            mean = sum(variant.completeness.percentage for variant in active) / len(active)
            profile.completeness = Completeness(
                required_fields_count=sum(
                    variant.completeness.required_fields_count for variant in active
                ),
                filled_fields_count=sum(
                    variant.completeness.filled_fields_count for variant in active
                ),
                percentage=min(_round_half_up(mean), 99) if missing else _round_half_up(mean),
                missing_fields=missing,
            )

    profile.is_complete = profile.completeness.percentage == 100
    return profile


def _percentage(filled: int, required: int) -> int:
    if required == 0:
        return 0
    percentage = _round_half_up(filled / required * 100)
    if filled < required:
        # 199/200 must not read as complete.
        return min(percentage, 99)
    return percentage


def _round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; percentages round half up.
    return int(value + 0.5)
