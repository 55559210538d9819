from __future__ import annotations

import threading
from pathlib import Path

import anyio.to_thread
import httpx
import pytest

from apps.api.main import app, get_service, reset_service_cache


@pytest.mark.anyio
async def test_healthz_returns_ok_and_request_id() -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Docprofile-Request-Id"]


@pytest.mark.anyio
async def test_meta_reports_tiers_and_roles(data_dir: Path) -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/v1/meta")

    assert response.status_code == 200
    body = response.json()
    assert body["storage_tiers"] == ["local"]
    assert body["marker_delimiters"] == {"open": "{{", "close": "}}"}
    assert "arrendador" in body["roles"]
    assert body["version"]


@pytest.mark.anyio
async def test_unknown_route_still_has_request_id() -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/nope")

    assert response.status_code == 404
    assert response.headers["X-Docprofile-Request-Id"]


@pytest.mark.anyio
async def test_slow_service_call_does_not_block_healthz(
    data_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    started = threading.Event()
    release = threading.Event()
    finished = threading.Event()
    service = get_service()
    list_profiles = service.list_profiles

    def slow_list_profiles(*args):
        started.set()
        release.wait(timeout=5)
        finished.set()
        return list_profiles(*args)

    monkeypatch.setattr(service, "list_profiles", slow_list_profiles)
    responses: dict[str, httpx.Response] = {}
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:

        async def list_in_background() -> None:
            responses["profiles"] = await client.get("/v1/profiles")

        async with anyio.create_task_group() as group:
            group.start_soon(list_in_background)
            assert await anyio.to_thread.run_sync(started.wait, 5)
            health = await client.get("/healthz")
            finished_before_health = finished.is_set()
            release.set()

    assert health.status_code == 200
    assert finished_before_health is False
    assert responses["profiles"].json() == {"profiles": []}


def test_reset_service_cache_closes_service(
    data_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    closed: list[bool] = []
    service = get_service()
    monkeypatch.setattr(service, "close", lambda: closed.append(True))

    reset_service_cache()

    assert closed == [True]
    assert get_service() is not service
