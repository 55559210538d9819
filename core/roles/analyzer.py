"""Template analysis: extraction, role classification, mapping suggestions."""

from __future__ import annotations

from core.roles.classifier import Classification, RoleClassifier
from core.roles.field_mapper import SIMILAR_CONFIDENCE, FieldMapper
from core.roles.models import (
    Recommendation,
    RoleGroup,
    SuggestedMapping,
    TemplateAnalysis,
    VariableDetail,
)
from core.roles.vocabulary import Vocabulary
from core.templates.marker_extractor import extract_variables
from core.templates.models import DEFAULT_DELIMITERS, MarkerDelimiters, Variable


class TemplateAnalyzer:
    """Combine classifier and mapper output into a TemplateAnalysis."""

    def __init__(
        self,
        vocabulary: Vocabulary,
        delimiters: MarkerDelimiters = DEFAULT_DELIMITERS,
    ) -> None:
        self._vocabulary = vocabulary
        self._delimiters = delimiters
        self.classifier = RoleClassifier(vocabulary)
        self.mapper = FieldMapper(vocabulary)

    @property
    def delimiters(self) -> MarkerDelimiters:
        return self._delimiters

    @property
    def vocabulary(self) -> Vocabulary:
        return self._vocabulary

    def extract(self, text: str) -> list[Variable]:
        return extract_variables(text, self._delimiters, self._vocabulary.stop_tokens)

    def analyze_text(self, template_id: str, text: str) -> TemplateAnalysis:
        return self.analyze_variables(template_id, self.extract(text))

    def analyze_variables(self, template_id: str, variables: list[Variable]) -> TemplateAnalysis:
        classification = self.classifier.classify(variables)

        details: list[VariableDetail] = []
        for variable in variables:
            role_match = classification.matches.get(variable.marker)
            if role_match is None:
                details.append(
                    VariableDetail(original=variable.marker, normalized=variable.normalized_name)
                )
                continue
            suggestion = self.mapper.suggest(role_match.suffix)
            details.append(
                VariableDetail(
                    original=variable.marker,
                    normalized=variable.normalized_name,
                    role=role_match.role,
                    field_suffix=role_match.suffix,
                    standard_field=suggestion.source_field if suggestion else None,
                )
            )

        role_groups = self._build_role_groups(classification)
        unclassified = [variable.marker for variable in classification.unclassified]

        return TemplateAnalysis(
            template_id=template_id,
            total_variables=len(variables),
            all_variables=[variable.marker for variable in variables],
            variable_details=details,
            role_groups=role_groups,
            unclassified_variables=unclassified,
            classification_rate=classification.classification_rate,
            recommendations=self._recommendations(role_groups, unclassified),
        )

    def _build_role_groups(self, classification: Classification) -> list[RoleGroup]:
        groups: list[RoleGroup] = []
        for role, variables in classification.groups.items():
            group = RoleGroup(role=role, role_label=self.classifier.role_label(role))
            for variable in variables:
                group.variables.append(variable.marker)
                suffix = classification.matches[variable.marker].suffix
                suggestion = self.mapper.suggest(suffix)
                if suggestion is None:
                    continue
                group.suggested_mappings.append(
                    SuggestedMapping(
                        template_variable=variable.marker,
                        field_suffix=suffix,
                        suggested_source_field=suggestion.source_field,
                        confidence=suggestion.confidence,
                    )
                )
            groups.append(group)
        return groups

    def _recommendations(
        self, role_groups: list[RoleGroup], unclassified: list[str]
    ) -> list[Recommendation]:
        recommendations: list[Recommendation] = []

        if role_groups:
            recommendations.append(
                Recommendation(
                    type="profile_creation",
                    priority="high",
                    message=f"Create entity profiles for {len(role_groups)} detected role(s)",
                    details=[group.role for group in role_groups],
                )
            )

        if unclassified:
            recommendations.append(
                Recommendation(
                    type="unclassified_variables",
                    priority="medium",
                    message=(
                        f"{len(unclassified)} variable(s) have no recognized role prefix; "
                        "use prefixes such as arrendador_, cliente_ or empleado_"
                    ),
                    details=list(unclassified),
                )
            )

        for group in role_groups:
            auto_fillable = [
                mapping.template_variable
                for mapping in group.suggested_mappings
                if mapping.confidence >= SIMILAR_CONFIDENCE
            ]
            if auto_fillable:
                recommendations.append(
                    Recommendation(
                        type="auto_fill_available",
                        priority="info",
                        message=(
                            f"{len(auto_fillable)} field(s) of '{group.role_label}' "
                            "can be auto-filled from entity data"
                        ),
                        role=group.role,
                        details=auto_fillable,
                    )
                )

        return recommendations
