"""Data models for marker extraction, duplicate resolution, and template fields."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class MarkerDelimiters:
    """Literal opening/closing strings that surround a marker."""

    open: str = "{{"
    close: str = "}}"

    def wrap(self, marker: str) -> str:
        return f"{self.open}{marker}{self.close}"


DEFAULT_DELIMITERS = MarkerDelimiters()


@dataclass(frozen=True)
class MarkerMatch:
    """One marker occurrence inside a text, with offsets of the delimited token."""

    marker: str
    start: int
    end: int


@dataclass(frozen=True)
class Variable:
    """Extraction result for one distinct marker.

    `display_order` and `repeat_source` are both 1-based display positions.
    """

    marker: str
    normalized_name: str
    occurrence_count: int
    field_name: str
    field_label: str
    field_type: str
    display_order: int
    required: bool = True
    can_repeat: bool = True
    repeat_count: int = 1
    is_repeated: bool = False
    repeat_source: int | None = None

    def to_field(self) -> TemplateField:
        return TemplateField(
            field_name=self.field_name,
            field_label=self.field_label,
            field_type=self.field_type,
            original_marker=self.marker,
            required=self.required,
            display_order=self.display_order,
            can_repeat=self.can_repeat,
            repeat_source=self.repeat_source,
            repeat_count=self.repeat_count,
            is_repeated=self.is_repeated,
        )


@dataclass(frozen=True)
class TemplateField:
    """Persisted field descriptor of a template."""

    field_name: str
    field_label: str
    field_type: str
    original_marker: str
    required: bool
    display_order: int
    can_repeat: bool = True
    repeat_source: int | None = None
    repeat_count: int = 1
    is_repeated: bool = False
