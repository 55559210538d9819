"""Business entity records read by the auto-filler."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

STANDARD_ATTRIBUTES: tuple[str, ...] = (
    "legal_name",
    "identification_number",
    "email",
    "phone",
    "address",
    "city",
)


class FieldBag:
    """Ordered key/value container for open-ended entity fields.

    Key collisions resolve to the first entry: an exact key match wins, then the
    first key equal under case-folding. Later duplicates are kept for iteration
    but never returned by `get`.
    """

    def __init__(self, items: Mapping[str, Any] | Iterable[tuple[str, Any]] = ()) -> None:
        pairs = items.items() if isinstance(items, Mapping) else items
        self._items: list[tuple[str, Any]] = [(str(key), value) for key, value in pairs]

    def get(self, key: str, default: Any = None) -> Any:
        for item_key, value in self._items:
            if item_key == key:
                return value
        folded = key.casefold()
        for item_key, value in self._items:
            if item_key.casefold() == folded:
                return value
        return default

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key, _MISSING) is not _MISSING

    def __iter__(self) -> Iterator[str]:
        return (key for key, _ in self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FieldBag):
            return NotImplemented
        return self._items == other._items

    def __repr__(self) -> str:
        return f"FieldBag({self._items!r})"

    def items(self) -> list[tuple[str, Any]]:
        return list(self._items)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key, value in self._items:
            result.setdefault(key, value)
        return result


_MISSING = object()


@dataclass
class EntityRecord:
    """Counter-party record owned by the surrounding CRUD system."""

    entity_id: str
    attributes: dict[str, Any] = field(default_factory=dict)
    custom_fields: FieldBag = field(default_factory=FieldBag)

    @classmethod
    def from_payload(cls, entity_id: str, payload: Mapping[str, Any]) -> EntityRecord:
        raw_custom = payload.get("custom_fields") or {}
        attributes = {key: value for key, value in payload.items() if key != "custom_fields"}
        return cls(entity_id=entity_id, attributes=attributes, custom_fields=FieldBag(raw_custom))

    def get_attribute(self, name: str) -> Any:
        return self.attributes.get(name)

    def get_custom_field(self, name: str) -> Any:
        return self.custom_fields.get(name)
