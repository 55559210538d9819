from __future__ import annotations

from pathlib import Path

import pytest

from core.orchestrator.factory import (
    build_service,
    data_dir,
    marker_delimiters,
    storage_timeout_seconds,
)


def test_data_dir_defaults_and_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DOCPROFILE_DATA_DIR", raising=False)
    assert data_dir() == Path(".docprofile")

    monkeypatch.setenv("DOCPROFILE_DATA_DIR", " /srv/docprofile ")
    assert data_dir() == Path("/srv/docprofile")


@pytest.mark.parametrize(("raw", "expected"), [("2.5", 2.5), ("abc", 10.0), ("0", 10.0)])
def test_storage_timeout_parsing(
    monkeypatch: pytest.MonkeyPatch, raw: str, expected: float
) -> None:
    monkeypatch.setenv("DOCPROFILE_STORAGE_TIMEOUT_SECONDS", raw)

    assert storage_timeout_seconds() == expected


def test_marker_delimiters_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DOCPROFILE_MARKER_OPEN", "<<")
    monkeypatch.setenv("DOCPROFILE_MARKER_CLOSE", ">>")

    delimiters = marker_delimiters()

    assert (delimiters.open, delimiters.close) == ("<<", ">>")


def test_build_service_adds_remote_tier_after_local(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("DOCPROFILE_REMOTE_STORE_URL", "https://store.example.test/objects")
    monkeypatch.delenv("DOCPROFILE_VOCABULARY", raising=False)

    service = build_service(tmp_path)

    assert service.storage.tier_names == ["local", "remote"]


def test_build_service_local_only(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DOCPROFILE_REMOTE_STORE_URL", raising=False)
    monkeypatch.delenv("DOCPROFILE_VOCABULARY", raising=False)

    service = build_service(tmp_path)

    assert service.storage.tier_names == ["local"]
    assert service.list_profiles() == []


def test_service_close_releases_remote_client(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("DOCPROFILE_REMOTE_STORE_URL", "https://store.example.test/objects")
    monkeypatch.delenv("DOCPROFILE_VOCABULARY", raising=False)
    service = build_service(tmp_path)
    remote = service.storage._tiers[1]

    service.close()

    assert remote._client.is_closed
