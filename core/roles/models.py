"""Template analysis report models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class SuggestedMapping(BaseModel):
    """Proposed entity attribute for one role variable."""

    model_config = ConfigDict(extra="forbid")

    template_variable: str
    field_suffix: str
    suggested_source_field: str
    confidence: float


class RoleGroup(BaseModel):
    """Variables sharing one inferred role, with their mapping suggestions."""

    model_config = ConfigDict(extra="forbid")

    role: str
    role_label: str
    variables: list[str] = Field(default_factory=list)
    suggested_mappings: list[SuggestedMapping] = Field(default_factory=list)

    def suggestion_for(self, template_variable: str) -> SuggestedMapping | None:
        for mapping in self.suggested_mappings:
            if mapping.template_variable == template_variable:
                return mapping
        return None


class VariableDetail(BaseModel):
    model_config = ConfigDict(extra="forbid")

    original: str
    normalized: str
    role: str | None = None
    field_suffix: str | None = None
    standard_field: str | None = None


class Recommendation(BaseModel):
    """Operator-facing hint derived from an analysis."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["profile_creation", "unclassified_variables", "auto_fill_available"]
    priority: Literal["high", "medium", "info"]
    message: str
    role: str | None = None
    details: list[str] = Field(default_factory=list)


class TemplateAnalysis(BaseModel):
    """Full analysis of one template's markers."""

    model_config = ConfigDict(extra="forbid")

    template_id: str
    total_variables: int
    all_variables: list[str] = Field(default_factory=list)
    variable_details: list[VariableDetail] = Field(default_factory=list)
    role_groups: list[RoleGroup] = Field(default_factory=list)
    unclassified_variables: list[str] = Field(default_factory=list)
    classification_rate: float = 0.0
    recommendations: list[Recommendation] = Field(default_factory=list)

    @property
    def roles_detected(self) -> list[str]:
        return [group.role for group in self.role_groups]

    def role_group(self, role: str) -> RoleGroup | None:
        code = role.strip().lower()
        for group in self.role_groups:
            if group.role == code:
                return group
        return None
