"""Variant management for a single profile.

Every operation works on a deep copy of the profile and returns it only after
validation and the invariant postconditions pass, so a failed call leaves the
caller's profile untouched. Invariants among active variants:
- at most one is the default;
- once any variant exists, at least one stays active.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.profiles.completeness import refresh_profile
from core.profiles.mappings import clean_specific_fields, default_variant
from core.profiles.models import Profile, Variant, VariantSpec, VariantUpdate, utc_now
from core.utils.errors import ConflictError, NotFoundError, ValidationError


@dataclass(frozen=True)
class VariantResult:
    """Updated profile copy plus the variant the operation targeted."""

    profile: Profile
    variant: Variant


class VariantStore:
    """Create, edit, clone, delete and pick default variants of a profile."""

    def create(self, profile: Profile, spec: VariantSpec) -> VariantResult:
        name = _clean_name(spec.variant_name)
        working = profile.model_copy(deep=True)
        _ensure_name_free(working, name)

        if spec.field_mappings is not None:
            mappings = [mapping.model_copy(deep=True) for mapping in spec.field_mappings]
        else:
            mappings = [mapping.model_copy(deep=True) for mapping in working.field_mappings]
        if spec.template_specific_fields is not None:
            specific = clean_specific_fields(spec.template_specific_fields)
        else:
            specific = dict(working.template_specific_fields)

        variant = Variant(
            variant_name=name,
            variant_description=spec.variant_description.strip(),
            context_tags=_clean_tags(spec.context_tags),
            field_mappings=mappings,
            template_specific_fields=specific,
        )

        make_default = spec.is_default or not working.active_variants
        if make_default:
            for other in working.variants:
                other.is_default = False
            variant.is_default = True

        working.variants.append(variant)
        return self._commit(working, variant.id)

    def update(self, profile: Profile, variant_id: str, changes: VariantUpdate) -> VariantResult:
        working = profile.model_copy(deep=True)
        variant = _require_variant(working, variant_id)

        if changes.variant_name is not None:
            name = _clean_name(changes.variant_name)
            _ensure_name_free(working, name, exclude_id=variant.id)
            variant.variant_name = name
        if changes.variant_description is not None:
            variant.variant_description = changes.variant_description.strip()
        if changes.context_tags is not None:
            variant.context_tags = _clean_tags(changes.context_tags)
        if changes.field_mappings is not None:
            variant.field_mappings = [
                mapping.model_copy(deep=True) for mapping in changes.field_mappings
            ]
        if changes.template_specific_fields is not None:
            variant.template_specific_fields = clean_specific_fields(
                changes.template_specific_fields
            )
        if changes.is_default is True:
            _make_default(working, variant)

        variant.updated_at = utc_now()
        return self._commit(working, variant.id)

    def set_default(self, profile: Profile, variant_id: str) -> VariantResult:
        working = profile.model_copy(deep=True)
        variant = _require_variant(working, variant_id)

        if variant.is_default:
            return VariantResult(profile=working, variant=variant)

        _make_default(working, variant)
        variant.updated_at = utc_now()
        return self._commit(working, variant.id)

    def clone(self, profile: Profile, source_variant_id: str, new_name: str) -> VariantResult:
        name = _clean_name(new_name)
        working = profile.model_copy(deep=True)
        source = _require_variant(working, source_variant_id)
        _ensure_name_free(working, name)

        clone = Variant(
            variant_name=name,
            variant_description=f"Clone of: {source.variant_name}",
            context_tags=list(source.context_tags),
            field_mappings=[mapping.model_copy(deep=True) for mapping in source.field_mappings],
            template_specific_fields=dict(source.template_specific_fields),
            is_default=False,
        )
        working.variants.append(clone)
        return self._commit(working, clone.id)

    def delete(self, profile: Profile, variant_id: str) -> VariantResult:
        """Soft-deactivate a variant; the last active one cannot be removed."""

        working = profile.model_copy(deep=True)
        variant = _require_variant(working, variant_id)

        if not variant.active:
            return VariantResult(profile=working, variant=variant)

        others = [item for item in working.active_variants if item.id != variant.id]
        if not others:
            raise ConflictError(
                f"Cannot delete variant '{variant.variant_name}': it is the only active variant"
            )

        variant.active = False
        if variant.is_default:
            variant.is_default = False
            others[0].is_default = True
        variant.updated_at = utc_now()
        return self._commit(working, variant.id)

    def record_usage(
        self, profile: Profile, variant_id: str | None, document_ref: str | None
    ) -> Profile:
        """Count one generated document against the profile and its variant."""

        working = profile.model_copy(deep=True)
        now = utc_now()

        if variant_id is not None:
            variant = _require_variant(working, variant_id)
            variant.usage_count += 1
            variant.last_used_in_document = document_ref
            variant.last_used_at = now

        working.usage_count += 1
        working.last_used_in_document = document_ref
        working.last_used_at = now
        return working

    def get_default(self, profile: Profile) -> Variant | None:
        return default_variant(profile)

    def _commit(self, working: Profile, variant_id: str) -> VariantResult:
        check_variant_invariants(working)
        working.updated_at = utc_now()
        refresh_profile(working)
        variant = working.variant(variant_id)
        if variant is None:
            raise NotFoundError(f"Variant not found: {variant_id}")
        return VariantResult(profile=working, variant=variant)


def check_variant_invariants(profile: Profile) -> None:
    """Raise ConflictError when the profile's variants break an invariant."""

    active = profile.active_variants
    defaults = [variant for variant in active if variant.is_default]
    if len(defaults) > 1:
        names = ", ".join(variant.variant_name for variant in defaults)
        raise ConflictError(f"Profile {profile.id} has several default variants: {names}")
    if profile.variants and not active:
        raise ConflictError(f"Profile {profile.id} must keep at least one active variant")
    if any(variant.is_default for variant in profile.variants if not variant.active):
        raise ConflictError(f"Profile {profile.id} has an inactive default variant")


def _make_default(profile: Profile, variant: Variant) -> None:
    if not variant.active:
        raise ConflictError(f"Variant '{variant.variant_name}' is inactive and cannot be default")
    for other in profile.variants:
        other.is_default = other.id == variant.id


def _require_variant(profile: Profile, variant_id: str) -> Variant:
    variant = profile.variant(variant_id)
    if variant is None:
        raise NotFoundError(
            f"Variant not found: {variant_id}",
            available=[item.id for item in profile.variants],
        )
    return variant


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("variant_name is required", field="variant_name")
    return cleaned


def _ensure_name_free(profile: Profile, name: str, exclude_id: str | None = None) -> None:
    folded = name.casefold()
    for variant in profile.active_variants:
        if variant.id == exclude_id:
            continue
        if variant.variant_name.casefold() == folded:
            raise ValidationError(
                f"An active variant named '{name}' already exists", field="variant_name"
            )


def _clean_tags(tags: list[str]) -> list[str]:
    cleaned: list[str] = []
    for tag in tags:
        value = tag.strip()
        if value and value not in cleaned:
            cleaned.append(value)
    return cleaned
