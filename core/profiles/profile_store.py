"""Local JSON store for profiles with a per-profile writer lock."""

from __future__ import annotations

import json
import threading
from collections import Counter
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import ValidationError as SchemaValidationError

from core.profiles.models import Profile, UsageStats
from core.utils.errors import ConflictError

_STORE_VERSION = 1


class ProfileStore:
    """Persist profiles keyed by id in a JSON file.

    (entity_ref, template_ref, role_in_template) is unique across profiles.
    Callers serialize read-modify-write on one profile with `locked(profile_id)`.
    """

    def __init__(self, store_path: Path) -> None:
        self._store_path = store_path
        self._file_lock = threading.RLock()
        self._locks_guard = threading.Lock()
        self._profile_locks: dict[str, threading.RLock] = {}
        self._lock_holders: Counter[str] = Counter()

    @contextmanager
    def locked(self, profile_key: str) -> Iterator[None]:
        """Hold the writer lock of one key; it is dropped once nobody waits on it."""

        with self._locks_guard:
            lock = self._profile_locks.setdefault(profile_key, threading.RLock())
            self._lock_holders[profile_key] += 1
        try:
            with lock:
                yield
        finally:
            with self._locks_guard:
                self._lock_holders[profile_key] -= 1
                if self._lock_holders[profile_key] <= 0:
                    del self._lock_holders[profile_key]
                    del self._profile_locks[profile_key]

    def get(self, profile_id: str) -> Profile | None:
        return self._read_data().get(profile_id)

    def find(self, entity_ref: str, template_ref: str, role: str) -> Profile | None:
        role_code = role.strip().lower()
        for profile in self._read_data().values():
            if (
                profile.entity_ref == entity_ref
                and profile.template_ref == template_ref
                and profile.role_in_template == role_code
            ):
                return profile
        return None

    def upsert(self, profile: Profile) -> None:
        with self._file_lock:
            data = self._read_data()
            for other in data.values():
                if other.id == profile.id:
                    continue
                if (
                    other.entity_ref == profile.entity_ref
                    and other.template_ref == profile.template_ref
                    and other.role_in_template == profile.role_in_template
                ):
                    raise ConflictError(
                        "A profile already exists for entity "
                        f"{profile.entity_ref}, template {profile.template_ref}, "
                        f"role {profile.role_in_template}"
                    )
            data[profile.id] = profile
            self._write_data(data)

    def list_all(self, template_ref: str | None = None, active_only: bool = True) -> list[Profile]:
        data = self._read_data()
        profiles = [data[key] for key in sorted(data.keys())]
        if template_ref is not None:
            profiles = [item for item in profiles if item.template_ref == template_ref]
        if active_only:
            profiles = [item for item in profiles if item.active]
        return profiles

    def list_by_entity(self, entity_ref: str, active_only: bool = True) -> list[Profile]:
        """Profiles of one entity, most recently used first, then most used."""

        profiles = [
            item
            for item in self.list_all(active_only=active_only)
            if item.entity_ref == entity_ref
        ]
        return sorted(profiles, key=_recency_key, reverse=True)

    def usage_stats(self, template_ref: str | None = None) -> list[UsageStats]:
        """Per-template counts over active profiles, sorted by template."""

        grouped: dict[str, list[Profile]] = {}
        for profile in self.list_all(template_ref=template_ref):
            grouped.setdefault(profile.template_ref, []).append(profile)

        stats: list[UsageStats] = []
        for key in sorted(grouped):
            profiles = grouped[key]
            total_usage = sum(item.usage_count for item in profiles)
            stats.append(
                UsageStats(
                    template_ref=key,
                    profile_count=len(profiles),
                    complete_count=sum(1 for item in profiles if item.is_complete),
                    average_usage=round(total_usage / len(profiles), 2),
                    total_usage=total_usage,
                )
            )
        return stats

    def deactivate(self, profile_id: str) -> bool:
        with self._file_lock:
            data = self._read_data()
            profile = data.get(profile_id)
            if profile is None or not profile.active:
                return False
            profile.active = False
            self._write_data(data)
            return True

    def _read_data(self) -> dict[str, Profile]:
        if not self._store_path.exists():
            return {}

        try:
            raw = json.loads(self._store_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid profile store JSON: {self._store_path}") from exc

        profiles: dict[str, Profile] = {}
        for profile_id, item in raw.get("profiles", {}).items():
            try:
                profiles[profile_id] = Profile.model_validate(item)
            except SchemaValidationError as exc:
                raise ValueError(
                    f"Invalid profile {profile_id} in store: {self._store_path}"
                ) from exc
        return profiles

    def _write_data(self, data: dict[str, Profile]) -> None:
        self._store_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._store_path.with_suffix(f"{self._store_path.suffix}.tmp")

        payload = {
            "version": _STORE_VERSION,
            "profiles": {
                key: data[key].model_dump(mode="json") for key in sorted(data.keys())
            },
        }
        temp_path.write_text(
            json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False),
            encoding="utf-8",
        )
        temp_path.replace(self._store_path)


def _recency_key(profile: Profile) -> tuple[float, int]:
    used_at = profile.last_used_at.timestamp() if profile.last_used_at else float("-inf")
    return used_at, profile.usage_count
