"""Local JSON store for template field descriptors."""

from __future__ import annotations

import json
import threading
from dataclasses import asdict
from pathlib import Path

from core.templates.models import TemplateField

_STORE_VERSION = 1


class JsonTemplateRepository:
    """Persist the ordered field list of each template keyed by template id."""

    def __init__(self, store_path: Path) -> None:
        self._store_path = store_path
        self._lock = threading.Lock()

    def get_fields(self, template_id: str) -> list[TemplateField] | None:
        return self._read_data().get(template_id)

    def save_fields(self, template_id: str, fields: list[TemplateField]) -> None:
        with self._lock:
            data = self._read_data()
            data[template_id] = sorted(fields, key=lambda item: item.display_order)
            self._write_data(data)

    def list_templates(self) -> list[str]:
        return sorted(self._read_data().keys())

    def _read_data(self) -> dict[str, list[TemplateField]]:
        if not self._store_path.exists():
            return {}

        try:
            raw = json.loads(self._store_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid template store JSON: {self._store_path}") from exc

        templates: dict[str, list[TemplateField]] = {}
        for template_id, items in raw.get("templates", {}).items():
            templates[template_id] = [
                TemplateField(
                    field_name=item["field_name"],
                    field_label=item.get("field_label", item["field_name"]),
                    field_type=item.get("field_type", "text"),
                    original_marker=item["original_marker"],
                    required=bool(item.get("required", True)),
                    display_order=int(item["display_order"]),
                    can_repeat=bool(item.get("can_repeat", True)),
                    repeat_source=item.get("repeat_source"),
                    repeat_count=int(item.get("repeat_count", 1)),
                    is_repeated=bool(item.get("is_repeated", False)),
                )
                for item in items
            ]
        return templates

    def _write_data(self, data: dict[str, list[TemplateField]]) -> None:
        self._store_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._store_path.with_suffix(f"{self._store_path.suffix}.tmp")

        payload = {
            "version": _STORE_VERSION,
            "templates": {
                key: [asdict(field) for field in data[key]] for key in sorted(data.keys())
            },
        }
        temp_path.write_text(
            json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False),
            encoding="utf-8",
        )
        temp_path.replace(self._store_path)
