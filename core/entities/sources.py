"""Entity source interface and local implementations."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Protocol

from core.entities.models import EntityRecord


class EntitySource(Protocol):
    """Read-only access to business entities owned by another system."""

    def get_record(self, entity_id: str) -> EntityRecord | None:
        """Return the entity or None when it does not exist."""

    def get_attribute(self, entity_id: str, canonical_name: str) -> Any:
        """Return a standard attribute value or None."""

    def get_custom_field(self, entity_id: str, name: str) -> Any:
        """Return a custom-field value or None."""


class InMemoryEntitySource:
    """Entity source backed by a dict of EntityRecord."""

    def __init__(self, records: list[EntityRecord] | None = None) -> None:
        self._records: dict[str, EntityRecord] = {}
        for record in records or []:
            self.add(record)

    def add(self, record: EntityRecord) -> None:
        self._records[record.entity_id] = record

    def get_record(self, entity_id: str) -> EntityRecord | None:
        return self._records.get(entity_id)

    def get_attribute(self, entity_id: str, canonical_name: str) -> Any:
        record = self.get_record(entity_id)
        return record.get_attribute(canonical_name) if record else None

    def get_custom_field(self, entity_id: str, name: str) -> Any:
        record = self.get_record(entity_id)
        return record.get_custom_field(name) if record else None


class JsonEntitySource(InMemoryEntitySource):
    """Entity source loaded from a JSON file: {"entities": {id: {...}}}."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = path
        if not path.exists():
            return

        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid entity source JSON: {path}") from exc

        entities = raw.get("entities", {}) if isinstance(raw, dict) else {}
        for entity_id, payload in entities.items():
            if isinstance(payload, dict):
                self.add(EntityRecord.from_payload(str(entity_id), payload))
