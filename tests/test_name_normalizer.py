from __future__ import annotations

import pytest

from core.templates.name_normalizer import normalize_name


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Arrendador_Nombre", "arrendador_nombre"),
        ("arrendador nombre", "arrendador_nombre"),
        ("ARRENDADOR-NOMBRE", "arrendador_nombre"),
        ("Dirección del Arrendador", "direccion_arrendador"),
        ("<b>Cliente</b> Email", "cliente_email"),
        ("__cliente__  __nit__", "cliente_nit"),
        ("Número de Cédula", "numero_cedula"),
    ],
)
def test_normalize_name_canonical_forms(raw: str, expected: str) -> None:
    assert normalize_name(raw) == expected


def test_normalize_name_keeps_stop_tokens_when_nothing_else_remains() -> None:
    assert normalize_name("de la") == "de_la"
    assert normalize_name("The") == "the"


def test_normalize_name_is_idempotent() -> None:
    for raw in ["Fecha de Firma", "<i>Cliente</i>__NIT", "los y las", "Teléfono"]:
        once = normalize_name(raw)
        assert normalize_name(once) == once


def test_normalize_name_handles_empty_and_symbol_only_input() -> None:
    assert normalize_name("") == ""
    assert normalize_name(None) == ""
    assert normalize_name("!!! ---") == ""


def test_normalize_name_accepts_custom_stop_tokens() -> None:
    assert normalize_name("fecha de firma", stop_tokens=()) == "fecha_de_firma"
    assert normalize_name("fecha de firma", stop_tokens=["firma"]) == "fecha_de"
