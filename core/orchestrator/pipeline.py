"""Service facade: extraction, analysis, profiles, variants and generation."""

from __future__ import annotations

import json
import logging
import re
import uuid
from collections.abc import Mapping
from typing import Any

from core.entities.sources import EntitySource
from core.profiles.autofill import ProfileAutoFiller
from core.profiles.mappings import default_variant, to_value_map, update_field
from core.profiles.models import Profile, UsageStats, VariantSpec, VariantUpdate
from core.profiles.profile_store import ProfileStore
from core.profiles.variants import VariantResult, VariantStore
from core.render.docx_assembler import assemble_document, normalize_value_map
from core.render.models import AssemblyResult, GeneratedDocument, MissingPolicy
from core.roles.analyzer import TemplateAnalyzer
from core.roles.models import TemplateAnalysis
from core.storage.resolver import StorageTierResolver
from core.templates.marker_extractor import extract_document_text
from core.templates.models import TemplateField, Variable
from core.templates.template_store import JsonTemplateRepository
from core.utils.errors import NotFoundError, ValidationError

logger = logging.getLogger("docprofile.pipeline")

_TEMPLATE_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")


def _log_event(event: str, **fields: Any) -> None:
    payload = {"event": event, **fields}
    logger.info(json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":")))


class DocumentProfileService:
    """Wire the pure core to its stores.

    Profile read-modify-write runs under the profile store's per-profile lock.
    Extraction, analysis and assembly hold no lock.
    """

    def __init__(
        self,
        *,
        analyzer: TemplateAnalyzer,
        entity_source: EntitySource,
        profile_store: ProfileStore,
        template_repository: JsonTemplateRepository,
        storage: StorageTierResolver,
        missing_policy: MissingPolicy = "empty",
    ) -> None:
        self.analyzer = analyzer
        self.profiles = profile_store
        self.templates = template_repository
        self.storage = storage
        self.missing_policy = missing_policy
        self._auto_filler = ProfileAutoFiller(entity_source)
        self._variants = VariantStore()

    def close(self) -> None:
        """Release storage clients; the service is unusable afterwards."""

        self.storage.close()

    # Templates

    def extract_variables(self, document_text: str) -> list[Variable]:
        return self.analyzer.extract(document_text)

    def extract_template(self, template_id: str, content: bytes) -> list[TemplateField]:
        """Store the template payload and its field list.

        Fields already known for the template keep their name, label, type and
        display order; new markers are appended after them.
        """

        _check_template_id(template_id)
        variables = self.analyzer.extract(extract_document_text(content))
        fields = _merge_fields(self.templates.get_fields(template_id) or [], variables)

        self.storage.store_template_bytes(template_id, content)
        self.templates.save_fields(template_id, fields)
        _log_event(
            "template_extracted",
            template_id=template_id,
            variable_count=len(variables),
            field_count=len(fields),
        )
        return fields

    def get_template_fields(self, template_id: str) -> list[TemplateField]:
        fields = self.templates.get_fields(template_id)
        if fields is None:
            raise NotFoundError(
                f"Template not found: {template_id}", available=self.templates.list_templates()
            )
        return fields

    def analyze_template(self, template_id: str, content: str | bytes) -> TemplateAnalysis:
        """Analyze plain text or docx bytes."""

        text = content if isinstance(content, str) else extract_document_text(content)
        analysis = self.analyzer.analyze_text(template_id, text)
        _log_event(
            "template_analyzed",
            template_id=template_id,
            total_variables=analysis.total_variables,
            roles=analysis.roles_detected,
            classification_rate=round(analysis.classification_rate, 4),
        )
        return analysis

    def analyze_stored_template(self, template_id: str) -> TemplateAnalysis:
        _check_template_id(template_id)
        return self.analyze_template(template_id, self.storage.fetch_template_bytes(template_id))

    # Profiles

    def auto_fill_profile(
        self,
        entity_id: str,
        template_id: str,
        role: str,
        content: str | bytes | None = None,
    ) -> Profile:
        """Create or refresh the profile of (entity, template, role)."""

        role_code = role.strip().lower()
        if content is None:
            analysis = self.analyze_stored_template(template_id)
        else:
            analysis = self.analyze_template(template_id, content)

        with self.profiles.locked(f"{entity_id}|{template_id}|{role_code}"):
            existing = self.profiles.find(entity_id, template_id, role_code)
            if existing is None:
                profile = self._auto_filler.auto_fill(entity_id, template_id, analysis, role_code)
                self.profiles.upsert(profile)
            else:
                with self.profiles.locked(existing.id):
                    current = self.profiles.get(existing.id) or existing
                    profile = self._auto_filler.auto_fill(
                        entity_id, template_id, analysis, role_code, existing=current
                    )
                    self.profiles.upsert(profile)

        _log_event(
            "profile_auto_filled",
            profile_id=profile.id,
            entity_id=entity_id,
            template_id=template_id,
            role=role_code,
            created=existing is None,
            percentage=profile.completeness.percentage,
        )
        return profile

    def get_profile(self, profile_id: str) -> Profile:
        profile = self.profiles.get(profile_id)
        if profile is None:
            raise NotFoundError(f"Profile not found: {profile_id}")
        return profile

    def list_profiles(
        self, template_id: str | None = None, entity_id: str | None = None
    ) -> list[Profile]:
        """Active profiles; an entity filter orders them by recent use."""

        if entity_id is None:
            return self.profiles.list_all(template_ref=template_id)
        profiles = self.profiles.list_by_entity(entity_id)
        if template_id is not None:
            profiles = [item for item in profiles if item.template_ref == template_id]
        return profiles

    def usage_stats(self, template_id: str | None = None) -> list[UsageStats]:
        return self.profiles.usage_stats(template_id)

    def update_profile_field(
        self,
        profile_id: str,
        template_variable: str,
        value: str | None,
        source_field: str | None = None,
    ) -> Profile:
        with self.profiles.locked(profile_id):
            profile = update_field(
                self.get_profile(profile_id), template_variable, value, source_field
            )
            self.profiles.upsert(profile)
        return profile

    # Variants

    def create_variant(self, profile_id: str, spec: VariantSpec) -> VariantResult:
        return self._mutate_variants(
            profile_id, "variant_created", lambda profile: self._variants.create(profile, spec)
        )

    def update_variant(
        self, profile_id: str, variant_id: str, changes: VariantUpdate
    ) -> VariantResult:
        return self._mutate_variants(
            profile_id,
            "variant_updated",
            lambda profile: self._variants.update(profile, variant_id, changes),
        )

    def set_default_variant(self, profile_id: str, variant_id: str) -> VariantResult:
        return self._mutate_variants(
            profile_id,
            "variant_default_set",
            lambda profile: self._variants.set_default(profile, variant_id),
        )

    def clone_variant(
        self, profile_id: str, source_variant_id: str, new_name: str
    ) -> VariantResult:
        return self._mutate_variants(
            profile_id,
            "variant_cloned",
            lambda profile: self._variants.clone(profile, source_variant_id, new_name),
        )

    def delete_variant(self, profile_id: str, variant_id: str) -> VariantResult:
        return self._mutate_variants(
            profile_id,
            "variant_deleted",
            lambda profile: self._variants.delete(profile, variant_id),
        )

    def record_variant_usage(
        self, profile_id: str, variant_id: str | None, document_ref: str | None
    ) -> Profile:
        with self.profiles.locked(profile_id):
            profile = self._variants.record_usage(
                self.get_profile(profile_id), variant_id, document_ref
            )
            self.profiles.upsert(profile)
        return profile

    # Assembly

    def assemble_document(
        self,
        template_bytes: bytes,
        value_map: Mapping[str, Any],
        missing_policy: MissingPolicy | None = None,
    ) -> AssemblyResult:
        return assemble_document(
            template_bytes,
            value_map,
            delimiters=self.analyzer.delimiters,
            missing_policy=missing_policy or self.missing_policy,
        )

    def generate_document(
        self,
        profile_id: str,
        variant_id: str | None = None,
        overrides: Mapping[str, Any] | None = None,
        missing_policy: MissingPolicy | None = None,
    ) -> GeneratedDocument:
        """Assemble the profile's template with its value map and store the artifact."""

        profile = self.get_profile(profile_id)
        if variant_id is None and profile.variants:
            chosen = default_variant(profile)
            used_variant_id = chosen.id if chosen else None
        else:
            used_variant_id = variant_id

        delimiters = self.analyzer.delimiters
        value_map = normalize_value_map(to_value_map(profile, variant_id), delimiters)
        value_map.update(normalize_value_map(overrides or {}, delimiters))

        template_bytes = self.storage.fetch_template_bytes(profile.template_ref)
        result = self.assemble_document(template_bytes, value_map, missing_policy)

        artifact_name = f"{profile.template_ref}-{uuid.uuid4().hex[:12]}.docx"
        artifact_ref = self.storage.store_artifact_bytes(result.output_bytes, artifact_name)
        self.record_variant_usage(profile_id, used_variant_id, artifact_ref)

        _log_event(
            "document_generated",
            profile_id=profile_id,
            variant_id=used_variant_id,
            template_id=profile.template_ref,
            artifact_ref=artifact_ref,
            replaced_count=result.summary.replaced_count,
            missing_count=result.summary.missing_count,
        )
        return GeneratedDocument(
            template_ref=profile.template_ref,
            value_map_used=value_map,
            output_bytes=result.output_bytes,
            warnings=result.warnings,
            artifact_ref=artifact_ref,
            profile_id=profile_id,
            variant_id=used_variant_id,
        )

    def _mutate_variants(self, profile_id: str, event: str, operation) -> VariantResult:
        with self.profiles.locked(profile_id):
            result = operation(self.get_profile(profile_id))
            self.profiles.upsert(result.profile)
        _log_event(
            event,
            profile_id=profile_id,
            variant_id=result.variant.id,
            variant_name=result.variant.variant_name,
        )
        return result


def _check_template_id(template_id: str) -> None:
    if not _TEMPLATE_ID_RE.match(template_id or ""):
        raise ValidationError(
            f"Invalid template id: {template_id!r} (letters, digits, '.', '_' and '-')",
            field="template_id",
        )


def _merge_fields(existing: list[TemplateField], variables: list[Variable]) -> list[TemplateField]:
    known = {field.original_marker: field for field in existing}
    next_order = max((field.display_order for field in existing), default=0) + 1

    orders: dict[int, int] = {}
    for variable in variables:
        previous = known.get(variable.marker)
        if previous is not None:
            orders[variable.display_order] = previous.display_order
        else:
            orders[variable.display_order] = next_order
            next_order += 1

    used_names = {
        known[variable.marker].field_name for variable in variables if variable.marker in known
    }
    merged: list[TemplateField] = []
    for variable in variables:
        previous = known.get(variable.marker)
        field_name = variable.field_name
        if previous is not None:
            field_name = previous.field_name
        elif field_name in used_names:
            field_name = f"{field_name}_{orders[variable.display_order]}"
        used_names.add(field_name)

        merged.append(
            TemplateField(
                field_name=field_name,
                field_label=previous.field_label if previous else variable.field_label,
                field_type=previous.field_type if previous else variable.field_type,
                original_marker=variable.marker,
                required=variable.required,
                display_order=orders[variable.display_order],
                can_repeat=variable.can_repeat,
                repeat_source=(
                    orders[variable.repeat_source] if variable.repeat_source is not None else None
                ),
                repeat_count=variable.repeat_count,
                is_repeated=variable.is_repeated,
            )
        )
    return sorted(merged, key=lambda field: field.display_order)
