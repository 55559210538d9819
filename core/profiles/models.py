"""Profile, variant and completeness models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def _new_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FieldMapping(BaseModel):
    """Value bound to one template marker."""

    model_config = ConfigDict(extra="forbid")

    template_variable: str
    source_field: str | None = None
    value: str | None = ""
    is_auto_filled: bool = False
    last_updated: datetime = Field(default_factory=utc_now)

    @property
    def is_filled(self) -> bool:
        return self.value is not None and self.value != ""


class Completeness(BaseModel):
    """Derived fill metrics; always recomputed from mappings."""

    model_config = ConfigDict(extra="forbid")

    required_fields_count: int = 0
    filled_fields_count: int = 0
    percentage: int = 0
    missing_fields: list[str] = Field(default_factory=list)


class Variant(BaseModel):
    """Named alternate configuration of a profile's mappings."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=_new_id)
    variant_name: str
    variant_description: str = ""
    context_tags: list[str] = Field(default_factory=list)
    field_mappings: list[FieldMapping] = Field(default_factory=list)
    template_specific_fields: dict[str, str | None] = Field(default_factory=dict)
    is_default: bool = False
    active: bool = True
    usage_count: int = 0
    last_used_in_document: str | None = None
    last_used_at: datetime | None = None
    completeness: Completeness = Field(default_factory=Completeness)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class VariantSpec(BaseModel):
    """Caller input for creating a variant."""

    model_config = ConfigDict(extra="forbid")

    variant_name: str
    variant_description: str = ""
    context_tags: list[str] = Field(default_factory=list)
    field_mappings: list[FieldMapping] | None = None
    template_specific_fields: dict[str, str | None] | None = None
    is_default: bool = False


class VariantUpdate(BaseModel):
    """Partial variant update; None leaves the attribute unchanged."""

    model_config = ConfigDict(extra="forbid")

    variant_name: str | None = None
    variant_description: str | None = None
    context_tags: list[str] | None = None
    field_mappings: list[FieldMapping] | None = None
    template_specific_fields: dict[str, str | None] | None = None
    is_default: bool | None = None


class Profile(BaseModel):
    """Reusable mappings of one entity acting in one role of one template."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=_new_id)
    entity_ref: str
    template_ref: str
    role_in_template: str
    role_label: str
    field_mappings: list[FieldMapping] = Field(default_factory=list)
    # Extra marker values merged into the value map where no mapping sets one.
    template_specific_fields: dict[str, str | None] = Field(default_factory=dict)
    variants: list[Variant] = Field(default_factory=list)
    completeness: Completeness = Field(default_factory=Completeness)
    is_complete: bool = False
    usage_count: int = 0
    last_used_at: datetime | None = None
    last_used_in_document: str | None = None
    active: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def active_variants(self) -> list[Variant]:
        return [variant for variant in self.variants if variant.active]

    def variant(self, variant_id: str) -> Variant | None:
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None

    def mapping(self, template_variable: str) -> FieldMapping | None:
        for mapping in self.field_mappings:
            if mapping.template_variable == template_variable:
                return mapping
        return None


class UsageStats(BaseModel):
    """Usage counts of the active profiles of one template."""

    model_config = ConfigDict(extra="forbid")

    template_ref: str
    profile_count: int
    complete_count: int
    average_usage: float
    total_usage: int
