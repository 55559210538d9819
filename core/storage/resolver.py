"""Tiered storage for template payloads and generated artifacts."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence

from core.storage.tiers import StorageTier, StorageTierError
from core.utils.errors import UnavailableError

logger = logging.getLogger("docprofile.storage")

TEMPLATE_PREFIX = "templates"
ARTIFACT_PREFIX = "artifacts"


def _log_event(event: str, **fields: object) -> None:
    payload = {"event": event, **fields}
    logger.info(json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":")))


class StorageTierResolver:
    """Ask tiers in order; the first one holding the object wins.

    Each tier is asked once per call. Writes go to the first tier that accepts
    them.
    """

    def __init__(self, tiers: Sequence[StorageTier]) -> None:
        if not tiers:
            raise ValueError("StorageTierResolver needs at least one tier")
        self._tiers = list(tiers)

    @property
    def tier_names(self) -> list[str]:
        return [tier.name for tier in self._tiers]

    def close(self) -> None:
        for tier in self._tiers:
            tier.close()

    def fetch_template_bytes(self, template_id: str) -> bytes:
        key = f"{TEMPLATE_PREFIX}/{template_id}.docx"
        attempted: list[str] = []
        for tier in self._tiers:
            attempted.append(tier.name)
            try:
                data = tier.fetch(key)
            except StorageTierError as exc:
                _log_event("storage_tier_failed", tier=tier.name, key=key, error=str(exc))
                continue
            if data is not None:
                _log_event("storage_fetch", tier=tier.name, key=key, size=len(data))
                return data

        raise UnavailableError(
            f"Template {template_id} is not available in any storage tier",
            object_id=template_id,
            attempted_tiers=attempted,
        )

    def store_template_bytes(self, template_id: str, data: bytes) -> str:
        return self._store(f"{TEMPLATE_PREFIX}/{template_id}.docx", data, template_id)

    def store_artifact_bytes(self, data: bytes, name: str) -> str:
        return self._store(f"{ARTIFACT_PREFIX}/{name}", data, name)

    def _store(self, key: str, data: bytes, object_id: str) -> str:
        attempted: list[str] = []
        for tier in self._tiers:
            attempted.append(tier.name)
            try:
                ref = tier.store(key, data)
            except StorageTierError as exc:
                _log_event("storage_tier_failed", tier=tier.name, key=key, error=str(exc))
                continue
            _log_event("storage_store", tier=tier.name, key=key, size=len(data))
            return ref

        raise UnavailableError(
            f"No storage tier accepted {key}",
            object_id=object_id,
            attempted_tiers=attempted,
        )
