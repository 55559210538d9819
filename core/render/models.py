"""Document assembly report models."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from core.profiles.models import utc_now

MissingPolicy = Literal["empty", "keep"]


class AssemblyWarning(BaseModel):
    """Non-fatal assembly notice (a marker with no value in the map)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    code: Literal["missing_value"] = "missing_value"
    marker: str
    message: str
    occurrences: int = 1


class AssemblySummary(BaseModel):
    """Aggregate substitution counts for observability."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    total_markers: int
    replaced_count: int
    missing_count: int
    missing_policy: MissingPolicy


class AssemblyResult(BaseModel):
    """In-memory assembly output; the input template bytes are untouched."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    output_bytes: bytes
    warnings: list[AssemblyWarning] = Field(default_factory=list)
    summary: AssemblySummary
    missing_markers: list[str] = Field(default_factory=list)


class GeneratedDocument(BaseModel):
    """Immutable record of one generated artifact."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    template_ref: str
    value_map_used: dict[str, str]
    output_bytes: bytes
    generated_at: datetime = Field(default_factory=utc_now)
    warnings: list[AssemblyWarning] = Field(default_factory=list)
    artifact_ref: str | None = None
    profile_id: str | None = None
    variant_id: str | None = None
