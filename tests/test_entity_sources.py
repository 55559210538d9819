from __future__ import annotations

import json
from pathlib import Path

import pytest

from core.entities.models import EntityRecord, FieldBag
from core.entities.sources import InMemoryEntitySource, JsonEntitySource


def test_field_bag_prefers_exact_key_then_case_insensitive() -> None:
    bag = FieldBag([("City", "Medellín"), ("city", "Bogotá")])

    assert bag.get("city") == "Bogotá"
    assert bag.get("CITY") == "Medellín"
    assert bag.get("missing", "n/a") == "n/a"


def test_field_bag_first_entry_wins_on_duplicate_keys() -> None:
    bag = FieldBag([("nit", "900-1"), ("nit", "900-2")])

    assert bag.get("nit") == "900-1"
    assert bag.to_dict() == {"nit": "900-1"}
    assert len(bag) == 2
    assert list(bag) == ["nit", "nit"]


def test_field_bag_contains_uses_lookup_rules() -> None:
    bag = FieldBag({"Sector": None})

    assert "sector" in bag
    assert "other" not in bag
    assert 3 not in bag


def test_entity_record_from_payload_splits_custom_fields() -> None:
    record = EntityRecord.from_payload(
        "e-1",
        {"legal_name": "Inmobiliaria Andes", "custom_fields": {"Ciudad": "Cali"}},
    )

    assert record.get_attribute("legal_name") == "Inmobiliaria Andes"
    assert record.get_attribute("custom_fields") is None
    assert record.get_custom_field("ciudad") == "Cali"


def test_in_memory_source_lookups() -> None:
    source = InMemoryEntitySource(
        [EntityRecord("e-1", {"email": "a@example.com"}, FieldBag({"tel": "555"}))]
    )

    assert source.get_attribute("e-1", "email") == "a@example.com"
    assert source.get_custom_field("e-1", "TEL") == "555"
    assert source.get_attribute("missing", "email") is None
    assert source.get_record("missing") is None


def test_json_source_loads_entities(tmp_path: Path) -> None:
    path = tmp_path / "entities.json"
    path.write_text(
        json.dumps(
            {
                "entities": {
                    "e-1": {
                        "legal_name": "Ana Pérez",
                        "custom_fields": {"Profesión": "Abogada"},
                    }
                }
            }
        ),
        encoding="utf-8",
    )

    source = JsonEntitySource(path)

    assert source.get_attribute("e-1", "legal_name") == "Ana Pérez"
    assert source.get_custom_field("e-1", "profesión") == "Abogada"


def test_json_source_missing_file_is_empty(tmp_path: Path) -> None:
    source = JsonEntitySource(tmp_path / "absent.json")

    assert source.get_record("e-1") is None


def test_json_source_raises_on_invalid_json(tmp_path: Path) -> None:
    path = tmp_path / "entities.json"
    path.write_text("{broken", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid entity source JSON"):
        JsonEntitySource(path)
