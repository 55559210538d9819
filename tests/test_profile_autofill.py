from __future__ import annotations

import pytest

from core.entities.models import EntityRecord, FieldBag
from core.entities.sources import InMemoryEntitySource
from core.profiles.autofill import ProfileAutoFiller
from core.profiles.mappings import to_value_map, update_field
from core.profiles.models import FieldMapping, Profile, Variant
from core.roles.analyzer import TemplateAnalyzer
from core.roles.models import TemplateAnalysis
from core.roles.vocabulary import load_vocabulary
from core.utils.errors import ConflictError, NotFoundError, ValidationError

TEMPLATE_TEXT = (
    "{{arrendador_nombre}} {{arrendador_cedula}} {{arrendador_email}} "
    "{{arrendador_ciudad}} {{arrendador_firma}} {{arrendatario_nombre}}"
)


def _analysis(text: str = TEMPLATE_TEXT) -> TemplateAnalysis:
    return TemplateAnalyzer(load_vocabulary()).analyze_text("lease", text)


def _source(**attributes: object) -> InMemoryEntitySource:
    base: dict[str, object] = {
        "legal_name": "Inmobiliaria Andes SAS",
        "identification_number": 900123456,
        "email": "",
    }
    base.update(attributes)
    return InMemoryEntitySource(
        [EntityRecord("e-1", base, FieldBag([("City", "Bogotá"), ("email", "alt@example.com")]))]
    )


def test_auto_fill_uses_attributes_then_custom_fields() -> None:
    profile = ProfileAutoFiller(_source()).auto_fill("e-1", "lease", _analysis(), "arrendador")

    mappings = {item.template_variable: item for item in profile.field_mappings}
    assert profile.role_in_template == "arrendador"
    assert profile.role_label == "Arrendador (Propietario)"
    assert mappings["arrendador_nombre"].value == "Inmobiliaria Andes SAS"
    assert mappings["arrendador_cedula"].value == "900123456"
    assert mappings["arrendador_cedula"].source_field == "identification_number"
    assert mappings["arrendador_email"].value == "alt@example.com"
    assert mappings["arrendador_ciudad"].value == "Bogotá"
    assert all(mappings[key].is_auto_filled for key in mappings if key != "arrendador_firma")


def test_auto_fill_includes_variables_without_suggestion() -> None:
    profile = ProfileAutoFiller(_source()).auto_fill("e-1", "lease", _analysis(), "arrendador")

    firma = profile.mapping("arrendador_firma")
    assert firma is not None
    assert firma.value == ""
    assert firma.source_field is None
    assert firma.is_auto_filled is False
    assert profile.completeness.missing_fields == ["arrendador_firma"]
    assert profile.completeness.percentage == 80


def test_auto_fill_unknown_role_lists_available_roles() -> None:
    filler = ProfileAutoFiller(_source())

    with pytest.raises(NotFoundError) as exc_info:
        filler.auto_fill("e-1", "lease", _analysis(), "garante")

    assert exc_info.value.available == ["arrendador", "arrendatario"]


def test_auto_fill_unknown_entity() -> None:
    with pytest.raises(NotFoundError, match="Entity not found"):
        ProfileAutoFiller(_source()).auto_fill("e-9", "lease", _analysis(), "arrendador")


def test_rerun_keeps_operator_values_and_refills_empty_ones() -> None:
    source = _source(legal_name="")
    filler = ProfileAutoFiller(source)
    first = filler.auto_fill("e-1", "lease", _analysis(), "arrendador")
    edited = update_field(first, "arrendador_cedula", "CC 1020")
    assert edited.mapping("arrendador_nombre").value == ""

    source.add(
        EntityRecord("e-1", {"legal_name": "Nuevo Nombre", "identification_number": "999"})
    )
    refreshed = filler.auto_fill("e-1", "lease", _analysis(), "arrendador", existing=edited)

    assert refreshed.id == first.id
    assert refreshed.mapping("arrendador_cedula").value == "CC 1020"
    assert refreshed.mapping("arrendador_cedula").is_auto_filled is False
    assert refreshed.mapping("arrendador_nombre").value == "Nuevo Nombre"
    assert edited.mapping("arrendador_nombre").value == ""


def test_rerun_is_idempotent() -> None:
    filler = ProfileAutoFiller(_source())
    first = filler.auto_fill("e-1", "lease", _analysis(), "arrendador")
    second = filler.auto_fill("e-1", "lease", _analysis(), "arrendador", existing=first)

    assert [(item.template_variable, item.value) for item in second.field_mappings] == [
        (item.template_variable, item.value) for item in first.field_mappings
    ]
    assert second.completeness == first.completeness


def test_rerun_drops_variables_removed_from_template() -> None:
    filler = ProfileAutoFiller(_source())
    first = filler.auto_fill("e-1", "lease", _analysis(), "arrendador")

    shorter = _analysis("{{arrendador_nombre}} {{arrendatario_nombre}}")
    refreshed = filler.auto_fill("e-1", "lease", shorter, "arrendador", existing=first)

    assert [item.template_variable for item in refreshed.field_mappings] == ["arrendador_nombre"]
    assert refreshed.is_complete is True


def test_update_field_appends_new_variable_and_recomputes() -> None:
    profile = ProfileAutoFiller(_source()).auto_fill("e-1", "lease", _analysis(), "arrendador")

    updated = update_field(profile, "arrendador_firma", "Ana", source_field="signature")
    extra = update_field(updated, "arrendador_notas", "")

    assert updated.mapping("arrendador_firma").source_field == "signature"
    assert updated.is_complete is True
    assert extra.mapping("arrendador_notas") is not None
    assert extra.completeness.missing_fields == ["arrendador_notas"]
    assert profile.mapping("arrendador_firma").value == ""


def test_update_field_rejects_blank_variable() -> None:
    profile = ProfileAutoFiller(_source()).auto_fill("e-1", "lease", _analysis(), "arrendador")

    with pytest.raises(ValidationError) as exc_info:
        update_field(profile, "  ", "x")

    assert exc_info.value.field == "template_variable"


def test_value_map_prefers_explicit_then_default_variant() -> None:
    profile = ProfileAutoFiller(_source()).auto_fill("e-1", "lease", _analysis(), "arrendador")
    assert to_value_map(profile)["arrendador_nombre"] == "Inmobiliaria Andes SAS"

    formal = Variant(
        variant_name="Formal",
        field_mappings=[m.model_copy(update={"value": "FORMAL"}) for m in profile.field_mappings],
    )
    short = Variant(
        variant_name="Short",
        is_default=True,
        field_mappings=[m.model_copy(update={"value": "SHORT"}) for m in profile.field_mappings],
    )
    retired = Variant(variant_name="Old", active=False)
    profile.variants = [formal, short, retired]

    assert set(to_value_map(profile).values()) == {"SHORT"}
    assert set(to_value_map(profile, formal.id).values()) == {"FORMAL"}

    with pytest.raises(ConflictError):
        to_value_map(profile, retired.id)
    with pytest.raises(NotFoundError):
        to_value_map(profile, "missing")


def test_value_map_fills_gaps_from_template_specific_fields() -> None:
    profile = Profile(
        entity_ref="e-1",
        template_ref="lease",
        role_in_template="arrendador",
        role_label="Arrendador",
        field_mappings=[
            FieldMapping(template_variable="arrendador_nombre", value="Ana"),
            FieldMapping(template_variable="arrendador_cedula", value=""),
        ],
        template_specific_fields={
            "arrendador_nombre": "ignored",
            "{{ arrendador_cedula }}": "CC 1",
            "arrendador_cedula": "second",
            "clausula_extra": None,
            "notaria": "Primera",
        },
    )

    assert to_value_map(profile) == {
        "arrendador_nombre": "Ana",
        "arrendador_cedula": "CC 1",
        "clausula_extra": "",
        "notaria": "Primera",
    }


def test_value_map_uses_template_specific_fields_of_chosen_variant() -> None:
    profile = Profile(
        entity_ref="e-1",
        template_ref="lease",
        role_in_template="arrendador",
        role_label="Arrendador",
        template_specific_fields={"notaria": "profile"},
    )
    profile.variants = [
        Variant(variant_name="Formal", is_default=True, template_specific_fields={"notaria": "A"}),
        Variant(variant_name="Short", template_specific_fields={}),
    ]

    assert to_value_map(profile) == {"notaria": "A"}
    assert to_value_map(profile, profile.variants[1].id) == {}
