"""Byte store tiers used by the storage resolver.

A tier returns None for a missing key and raises StorageTierError when it
cannot answer at all (unreachable remote, unreadable directory).
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Protocol

import httpx


class StorageTierError(Exception):
    """Raised by a tier that cannot serve a request."""


class StorageTier(Protocol):
    name: str

    def fetch(self, key: str) -> bytes | None: ...

    def store(self, key: str, data: bytes) -> str: ...

    def close(self) -> None: ...


def _clean_key(key: str) -> str:
    path = PurePosixPath(key.replace("\\", "/"))
    if path.is_absolute() or not path.parts or any(part in ("", ".", "..") for part in path.parts):
        raise StorageTierError(f"Invalid storage key: {key!r}")
    return path.as_posix()


class LocalDirectoryTier:
    """Objects stored as files under a root directory."""

    def __init__(self, root: Path, name: str = "local") -> None:
        self.root = root
        self.name = name

    def fetch(self, key: str) -> bytes | None:
        path = self.root / _clean_key(key)
        if not path.is_file():
            return None
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageTierError(f"{self.name}: cannot read {key}: {exc}") from exc

    def store(self, key: str, data: bytes) -> str:
        clean = _clean_key(key)
        path = self.root / clean
        temp_path = path.with_suffix(f"{path.suffix}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_bytes(data)
            temp_path.replace(path)
        except OSError as exc:
            raise StorageTierError(f"{self.name}: cannot write {key}: {exc}") from exc
        return f"{self.name}:{clean}"

    def close(self) -> None:
        pass


class HttpTier:
    """Objects served by a remote store: GET/PUT on <base_url>/<key>."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        name: str = "remote",
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.name = name
        self._client = client or httpx.Client(timeout=timeout)

    def fetch(self, key: str) -> bytes | None:
        url = self._url(key)
        try:
            response = self._client.get(url)
        except httpx.HTTPError as exc:
            raise StorageTierError(f"{self.name}: GET {url} failed: {exc}") from exc

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise StorageTierError(f"{self.name}: GET {url} returned {response.status_code}")
        return response.content

    def store(self, key: str, data: bytes) -> str:
        url = self._url(key)
        try:
            response = self._client.put(
                url,
                content=data,
                headers={"Content-Type": "application/octet-stream"},
            )
        except httpx.HTTPError as exc:
            raise StorageTierError(f"{self.name}: PUT {url} failed: {exc}") from exc

        if response.status_code not in (200, 201, 204):
            raise StorageTierError(f"{self.name}: PUT {url} returned {response.status_code}")
        return url

    def close(self) -> None:
        self._client.close()

    def _url(self, key: str) -> str:
        return f"{self.base_url}/{_clean_key(key)}"
