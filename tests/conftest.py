from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path

import pytest

from apps.api.main import reset_service_cache

ENTITIES = {
    "entities": {
        "e-1": {
            "legal_name": "Inmobiliaria Andes SAS",
            "identification_number": "900123",
            "custom_fields": {"City": "Bogotá"},
        },
        "e-2": {"legal_name": "Luis Gómez"},
    }
}


@pytest.fixture
def data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point the API service at a fresh store root seeded with entities."""

    root = tmp_path / "data"
    root.mkdir()
    (root / "entities.json").write_text(json.dumps(ENTITIES), encoding="utf-8")
    monkeypatch.setenv("DOCPROFILE_DATA_DIR", str(root))
    for name in ("DOCPROFILE_REMOTE_STORE_URL", "DOCPROFILE_VOCABULARY"):
        monkeypatch.delenv(name, raising=False)
    reset_service_cache()
    yield root
    reset_service_cache()
