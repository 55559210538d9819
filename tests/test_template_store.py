from __future__ import annotations

import json
from pathlib import Path

import pytest

from core.templates.marker_extractor import extract_variables
from core.templates.template_store import JsonTemplateRepository


def test_save_and_load_fields_in_display_order(tmp_path: Path) -> None:
    repo = JsonTemplateRepository(tmp_path / "templates.json")
    fields = [item.to_field() for item in extract_variables("{{b}} {{a}} {{b}}")]

    repo.save_fields("lease", list(reversed(fields)))

    loaded = repo.get_fields("lease")
    assert loaded == fields
    assert [item.display_order for item in loaded] == [1, 2]
    assert repo.get_fields("other") is None


def test_list_templates_is_sorted(tmp_path: Path) -> None:
    repo = JsonTemplateRepository(tmp_path / "templates.json")
    repo.save_fields("zeta", [])
    repo.save_fields("alpha", [])

    assert repo.list_templates() == ["alpha", "zeta"]


def test_store_payload_shape(tmp_path: Path) -> None:
    path = tmp_path / "templates.json"
    repo = JsonTemplateRepository(path)
    repo.save_fields("lease", [item.to_field() for item in extract_variables("{{x}}")])

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["version"] == 1
    assert payload["templates"]["lease"][0]["original_marker"] == "x"
    assert payload["templates"]["lease"][0]["display_order"] == 1


def test_missing_store_is_empty(tmp_path: Path) -> None:
    assert JsonTemplateRepository(tmp_path / "absent.json").list_templates() == []


def test_invalid_store_json_raises(tmp_path: Path) -> None:
    path = tmp_path / "templates.json"
    path.write_text("[", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid template store JSON"):
        JsonTemplateRepository(path).get_fields("lease")
