"""Role vocabulary model and YAML loader."""

from __future__ import annotations

from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as SchemaValidationError

from core.templates.name_normalizer import DEFAULT_STOP_TOKENS, normalize_name


class RoleDefinition(BaseModel):
    """One legal-party role and the marker prefixes that identify it."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    code: str = Field(min_length=1)
    label: str = Field(min_length=1)
    prefixes: tuple[str, ...] = Field(min_length=1)

    @field_validator("code")
    @classmethod
    def _lowercase_code(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("prefixes")
    @classmethod
    def _normalize_prefixes(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        normalized = tuple(normalize_name(item, stop_tokens=()) for item in value)
        if any(not item for item in normalized):
            raise ValueError("role prefixes must be non-empty")
        return normalized


class Vocabulary(BaseModel):
    """Immutable lookup tables injected into the classifier and field mapper."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    roles: tuple[RoleDefinition, ...]
    field_mappings: dict[str, str]
    exact_matches: dict[str, str] = Field(default_factory=dict)
    similar_matches: dict[str, str] = Field(default_factory=dict)
    stop_tokens: tuple[str, ...] = tuple(sorted(DEFAULT_STOP_TOKENS))

    @model_validator(mode="after")
    def _check_tables(self) -> Vocabulary:
        codes = [role.code for role in self.roles]
        if len(codes) != len(set(codes)):
            raise ValueError("role codes must be unique")

        for table_name, table in (
            ("exact_matches", self.exact_matches),
            ("similar_matches", self.similar_matches),
        ):
            for suffix, attribute in table.items():
                if self.field_mappings.get(suffix) != attribute:
                    raise ValueError(
                        f"{table_name}[{suffix!r}] must also appear in field_mappings "
                        f"with the same attribute"
                    )
        return self

    def role(self, code: str) -> RoleDefinition | None:
        for role in self.roles:
            if role.code == code:
                return role
        return None

    def role_label(self, code: str) -> str:
        role = self.role(code)
        if role is not None:
            return role.label
        return code[:1].upper() + code[1:]


def load_vocabulary(path: Path | None = None) -> Vocabulary:
    """Load and validate the role vocabulary from YAML."""

    vocabulary_path = path or Path(__file__).with_name("vocabulary.yaml")

    try:
        raw = yaml.safe_load(vocabulary_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Vocabulary file not found: {vocabulary_path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in vocabulary file: {vocabulary_path}") from exc

    if not isinstance(raw, dict):
        raise ValueError(f"Vocabulary file must contain a mapping: {vocabulary_path}")

    try:
        return Vocabulary.model_validate(raw)
    except SchemaValidationError as exc:
        raise ValueError(f"Invalid vocabulary schema: {vocabulary_path}: {exc}") from exc
