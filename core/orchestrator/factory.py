"""Build a DocumentProfileService from environment settings."""

from __future__ import annotations

import os
from pathlib import Path

from core.entities.sources import EntitySource, JsonEntitySource
from core.orchestrator.pipeline import DocumentProfileService
from core.profiles.profile_store import ProfileStore
from core.roles.analyzer import TemplateAnalyzer
from core.roles.vocabulary import load_vocabulary
from core.storage.resolver import StorageTierResolver
from core.storage.tiers import HttpTier, LocalDirectoryTier, StorageTier
from core.templates.models import DEFAULT_DELIMITERS, MarkerDelimiters
from core.templates.template_store import JsonTemplateRepository

_DEFAULT_DATA_DIR = ".docprofile"
_DEFAULT_STORAGE_TIMEOUT_SECONDS = 10.0


def data_dir() -> Path:
    raw = os.getenv("DOCPROFILE_DATA_DIR")
    if raw is None or not raw.strip():
        return Path(_DEFAULT_DATA_DIR)
    return Path(raw.strip())


def vocabulary_path() -> Path | None:
    raw = os.getenv("DOCPROFILE_VOCABULARY")
    if raw is None or not raw.strip():
        return None
    return Path(raw.strip())


def remote_store_url() -> str | None:
    raw = os.getenv("DOCPROFILE_REMOTE_STORE_URL")
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def storage_timeout_seconds() -> float:
    raw = os.getenv("DOCPROFILE_STORAGE_TIMEOUT_SECONDS")
    if raw is None:
        return _DEFAULT_STORAGE_TIMEOUT_SECONDS
    try:
        parsed = float(raw)
    except ValueError:
        return _DEFAULT_STORAGE_TIMEOUT_SECONDS
    return parsed if parsed > 0 else _DEFAULT_STORAGE_TIMEOUT_SECONDS


def marker_delimiters() -> MarkerDelimiters:
    open_raw = os.getenv("DOCPROFILE_MARKER_OPEN") or DEFAULT_DELIMITERS.open
    close_raw = os.getenv("DOCPROFILE_MARKER_CLOSE") or DEFAULT_DELIMITERS.close
    return MarkerDelimiters(open=open_raw, close=close_raw)


def build_service(
    root: Path | None = None,
    entity_source: EntitySource | None = None,
) -> DocumentProfileService:
    """Assemble stores under `root` (default: DOCPROFILE_DATA_DIR).

    Entities are read from `<root>/entities.json` unless a source is passed.
    A remote HTTP tier, when configured, is consulted after the local one.
    """

    base = root or data_dir()
    vocabulary = load_vocabulary(vocabulary_path())

    tiers: list[StorageTier] = [LocalDirectoryTier(base / "objects", name="local")]
    remote_url = remote_store_url()
    if remote_url is not None:
        tiers.append(HttpTier(remote_url, timeout=storage_timeout_seconds(), name="remote"))

    return DocumentProfileService(
        analyzer=TemplateAnalyzer(vocabulary, marker_delimiters()),
        entity_source=entity_source or JsonEntitySource(base / "entities.json"),
        profile_store=ProfileStore(base / "profiles.json"),
        template_repository=JsonTemplateRepository(base / "templates.json"),
        storage=StorageTierResolver(tiers),
    )
