from __future__ import annotations

import base64
import io
import json
from pathlib import Path

import httpx
import pytest
from docx import Document

from apps.api.main import app

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def _build_docx_bytes() -> bytes:
    document = Document()
    document.add_paragraph("Cliente: {{cliente_nombre}} / {{cliente_email}}")
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


async def _post_assemble(
    *,
    filename: str = "template.docx",
    content: bytes | None = None,
    values: str = "{}",
    missing_policy: str = "empty",
) -> httpx.Response:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        return await client.post(
            "/v1/assemble",
            files={
                "template": (
                    filename,
                    _build_docx_bytes() if content is None else content,
                    DOCX_MEDIA_TYPE,
                )
            },
            data={"values": values, "missing_policy": missing_policy},
        )


def _paragraph_text(body: dict) -> str:
    document = Document(io.BytesIO(base64.b64decode(body["output_base64"])))
    return document.paragraphs[0].text


@pytest.mark.anyio
async def test_assemble_returns_document_and_summary(data_dir: Path) -> None:
    response = await _post_assemble(values=json.dumps({"cliente_nombre": "ACME"}))

    assert response.status_code == 200
    body = response.json()
    assert _paragraph_text(body) == "Cliente: ACME / "
    assert body["summary"] == {
        "total_markers": 2,
        "replaced_count": 1,
        "missing_count": 1,
        "missing_policy": "empty",
    }
    assert body["missing_markers"] == ["cliente_email"]
    assert body["warnings"][0]["code"] == "missing_value"


@pytest.mark.anyio
async def test_assemble_keep_policy(data_dir: Path) -> None:
    response = await _post_assemble(values="{}", missing_policy="KEEP")

    assert response.status_code == 200
    assert _paragraph_text(response.json()) == "Cliente: {{cliente_nombre}} / {{cliente_email}}"


@pytest.mark.anyio
async def test_assemble_rejects_bad_missing_policy(data_dir: Path) -> None:
    response = await _post_assemble(missing_policy="drop")

    assert response.status_code == 422
    assert response.json()["detail"]["field"] == "missing_policy"


@pytest.mark.anyio
@pytest.mark.parametrize("values", ["not json", "[1, 2]"])
async def test_assemble_rejects_non_object_values(data_dir: Path, values: str) -> None:
    response = await _post_assemble(values=values)

    assert response.status_code == 422
    assert response.json()["error_code"] == "VALIDATION_ERROR"
    assert response.json()["detail"]["field"] == "values"


@pytest.mark.anyio
async def test_assemble_rejects_non_docx_filename(data_dir: Path) -> None:
    response = await _post_assemble(filename="template.txt")

    assert response.status_code == 415
    assert response.json()["error_code"] == "INVALID_MEDIA_TYPE"


@pytest.mark.anyio
async def test_assemble_rejects_bytes_without_zip_header(data_dir: Path) -> None:
    response = await _post_assemble(content=b"plain text pretending")

    assert response.status_code == 415
    assert response.json()["detail"]["field"] == "template"


@pytest.mark.anyio
async def test_assemble_broken_package_is_invalid_template(data_dir: Path) -> None:
    response = await _post_assemble(content=b"PK\x03\x04broken")

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_TEMPLATE"


@pytest.mark.anyio
async def test_assemble_enforces_upload_limit(
    data_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("DOCPROFILE_MAX_UPLOAD_BYTES", "16")

    response = await _post_assemble()

    assert response.status_code == 413
    assert response.json()["error_code"] == "UPLOAD_TOO_LARGE"
    assert response.json()["detail"]["max_bytes"] == 16
