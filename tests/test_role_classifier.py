from __future__ import annotations

import pytest

from core.roles.classifier import RoleClassifier
from core.roles.field_mapper import FieldMapper
from core.roles.vocabulary import load_vocabulary
from core.templates.marker_extractor import extract_variables


@pytest.fixture(scope="module")
def classifier() -> RoleClassifier:
    return RoleClassifier(load_vocabulary())


@pytest.fixture(scope="module")
def mapper() -> FieldMapper:
    return FieldMapper(load_vocabulary())


def test_match_splits_role_prefix_and_suffix(classifier: RoleClassifier) -> None:
    match = classifier.match("arrendador_cedula")

    assert match is not None
    assert match.role == "arrendador"
    assert match.prefix == "arrendador"
    assert match.suffix == "cedula"


def test_match_accepts_bare_prefix(classifier: RoleClassifier) -> None:
    match = classifier.match("testigo")

    assert match is not None
    assert match.role == "testigo"
    assert match.suffix == ""


def test_match_requires_separator_after_prefix(classifier: RoleClassifier) -> None:
    assert classifier.match("clientela_nombre") is None
    assert classifier.match("") is None


def test_match_uses_role_table_order(classifier: RoleClassifier) -> None:
    match = classifier.match("comprador_nombre")

    assert match is not None
    assert match.role == "cliente"


def test_match_with_multi_token_prefix(classifier: RoleClassifier) -> None:
    match = classifier.match("proveedor_servicio_nombre")

    assert match is not None
    assert match.role == "contratista"
    assert match.suffix == "nombre"


def test_match_english_prefix(classifier: RoleClassifier) -> None:
    match = classifier.match("tenant_email")

    assert match is not None
    assert match.role == "arrendatario"
    assert match.suffix == "email"


def test_classify_groups_in_first_seen_order(classifier: RoleClassifier) -> None:
    variables = extract_variables(
        "{{arrendatario_nombre}} {{arrendador_nombre}} {{fecha_firma}} {{arrendatario_cedula}}"
    )

    result = classifier.classify(variables)

    assert list(result.groups) == ["arrendatario", "arrendador"]
    assert [item.marker for item in result.groups["arrendatario"]] == [
        "arrendatario_nombre",
        "arrendatario_cedula",
    ]
    assert [item.marker for item in result.unclassified] == ["fecha_firma"]
    assert result.classification_rate == pytest.approx(0.75)


def test_classify_empty_input_has_zero_rate(classifier: RoleClassifier) -> None:
    result = classifier.classify([])

    assert result.classification_rate == 0.0
    assert result.groups == {}


@pytest.mark.parametrize(
    ("suffix", "attribute", "confidence"),
    [
        ("cedula", "identification_number", 1.0),
        ("nombre", "legal_name", 1.0),
        ("nit", "identification_number", 0.8),
        ("correo", "email", 0.8),
        ("rut", "identification_number", 0.6),
        ("ciudad", "city", 0.6),
    ],
)
def test_mapper_confidence_tiers(
    mapper: FieldMapper, suffix: str, attribute: str, confidence: float
) -> None:
    suggestion = mapper.suggest(suffix)

    assert suggestion is not None
    assert suggestion.source_field == attribute
    assert suggestion.confidence == confidence


def test_mapper_returns_none_for_unknown_suffix(mapper: FieldMapper) -> None:
    assert mapper.suggest("firma") is None
    assert mapper.suggest("") is None
