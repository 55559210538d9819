"""FastAPI wrapper for the docprofile service."""

from __future__ import annotations

import base64
import importlib.metadata
import json
import logging
import os
import threading
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Annotated, Any, Literal, TypeVar

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from core.orchestrator.factory import build_service
from core.orchestrator.pipeline import DocumentProfileService
from core.profiles.models import VariantSpec, VariantUpdate
from core.profiles.variants import VariantResult
from core.templates.marker_extractor import extract_document_text
from core.utils.errors import (
    AssemblyError,
    ConflictError,
    CoreError,
    FormatError,
    NotFoundError,
    UnavailableError,
    ValidationError,
)

logger = logging.getLogger("docprofile.api")

MissingPolicy = Literal["empty", "keep"]
T = TypeVar("T")

_DEFAULT_MAX_UPLOAD_BYTES = 25 * 1024 * 1024
_REQUEST_ID_HEADER = "X-Docprofile-Request-Id"
_DOCX_MAGIC = b"PK\x03\x04"

_CORE_ERROR_STATUS: tuple[tuple[type[CoreError], int, str], ...] = (
    (ValidationError, 422, "VALIDATION_ERROR"),
    (ConflictError, 409, "CONFLICT"),
    (NotFoundError, 404, "NOT_FOUND"),
    (FormatError, 400, "INVALID_TEMPLATE"),
    (AssemblyError, 500, "ASSEMBLY_ERROR"),
    (UnavailableError, 503, "STORAGE_UNAVAILABLE"),
)


class ApiRequestError(Exception):
    def __init__(
        self,
        *,
        status_code: int,
        error_code: str,
        message: str,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.detail = detail or {}


class AutoFillRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    entity_id: str = Field(min_length=1)
    template_id: str = Field(min_length=1)
    role: str = Field(min_length=1)


class FieldUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    template_variable: str
    value: str | None = None
    source_field: str | None = None


class CloneVariantRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    new_name: str


class GenerateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    variant_id: str | None = None
    overrides: dict[str, str | None] = Field(default_factory=dict)
    missing_policy: MissingPolicy | None = None


_service_lock = threading.Lock()
_service_cache: DocumentProfileService | None = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await run_in_threadpool(reset_service_cache)


app = FastAPI(title="docprofile-agent API", version="0.1.0", lifespan=lifespan)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Ensure every response has a request id header."""

    request_id = uuid.uuid4().hex
    request.state.request_id = request_id
    _log_event(logging.INFO, "start", request_id, method=request.method, path=request.url.path)
    try:
        response = await call_next(request)
    except Exception:  # noqa: BLE001
        _log_event(
            logging.ERROR,
            "error",
            request_id,
            error_code="INTERNAL_ERROR",
            status_code=500,
            path=request.url.path,
        )
        response = _error_response(
            status_code=500,
            error_code="INTERNAL_ERROR",
            message="internal server error",
            request_id=request_id,
            detail={"path": request.url.path},
        )
    response.headers.setdefault(_REQUEST_ID_HEADER, request_id)
    return response


@app.exception_handler(CoreError)
async def core_error_handler(request: Request, exc: CoreError) -> JSONResponse:
    request_id = _request_id_from_request(request)
    status_code, error_code = _core_error_status(exc)
    _log_event(
        logging.ERROR if status_code >= 500 else logging.WARNING,
        "error",
        request_id,
        error_code=error_code,
        status_code=status_code,
        path=request.url.path,
    )
    return _error_response(
        status_code=status_code,
        error_code=error_code,
        message=str(exc),
        request_id=request_id,
        detail=_core_error_detail(exc),
    )


@app.exception_handler(ApiRequestError)
async def api_request_error_handler(request: Request, exc: ApiRequestError) -> JSONResponse:
    request_id = _request_id_from_request(request)
    _log_event(
        logging.WARNING,
        "error",
        request_id,
        error_code=exc.error_code,
        status_code=exc.status_code,
        path=request.url.path,
    )
    return _error_response(
        status_code=exc.status_code,
        error_code=exc.error_code,
        message=exc.message,
        request_id=request_id,
        detail=exc.detail,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    request_id = _request_id_from_request(request)
    errors = [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    return _error_response(
        status_code=422,
        error_code="VALIDATION_ERROR",
        message="request validation failed",
        request_id=request_id,
        detail={"errors": errors},
    )


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    """Liveness endpoint."""

    return {"status": "ok"}


@app.get("/v1/meta")
async def meta_v1(request: Request) -> JSONResponse:
    """Version and configured storage tiers."""

    request_id = _request_id_from_request(request)
    service = await run_in_threadpool(get_service)
    payload = {
        "version": _package_version(),
        "storage_tiers": service.storage.tier_names,
        "marker_delimiters": {
            "open": service.analyzer.delimiters.open,
            "close": service.analyzer.delimiters.close,
        },
        "roles": [role.code for role in service.analyzer.vocabulary.roles],
    }
    return JSONResponse(status_code=200, headers={_REQUEST_ID_HEADER: request_id}, content=payload)


@app.post("/v1/extract")
async def extract_v1(
    request: Request,
    template: Annotated[UploadFile, File(...)],
    template_id: Annotated[str | None, Form()] = None,
) -> JSONResponse:
    """List template markers; with template_id, store the template and its fields."""

    request_id = _request_id_from_request(request)
    content = await _read_docx_upload(template, "template")
    if template_id:
        fields = await _run_service(
            lambda service: service.extract_template(template_id, content)
        )
        payload: dict[str, Any] = {
            "template_id": template_id,
            "fields": [asdict(item) for item in fields],
        }
    else:
        variables = await _run_service(
            lambda service: service.extract_variables(extract_document_text(content))
        )
        payload = {"variables": [asdict(item) for item in variables]}

    _log_event(logging.INFO, "done", request_id, path="/v1/extract", stored=bool(template_id))
    return _json(payload, request_id)


@app.get("/v1/templates/{template_id}/fields")
async def template_fields_v1(request: Request, template_id: str) -> JSONResponse:
    request_id = _request_id_from_request(request)
    fields = await _run_service(lambda service: service.get_template_fields(template_id))
    return _json(
        {"template_id": template_id, "fields": [asdict(item) for item in fields]}, request_id
    )


@app.post("/v1/templates/{template_id}/analyze")
async def analyze_v1(
    request: Request,
    template_id: str,
    template: Annotated[UploadFile | None, File()] = None,
) -> JSONResponse:
    """Analyze an uploaded template, or the stored one when nothing is uploaded."""

    request_id = _request_id_from_request(request)
    if template is None:
        analysis = await _run_service(
            lambda service: service.analyze_stored_template(template_id)
        )
    else:
        content = await _read_docx_upload(template, "template")
        analysis = await _run_service(
            lambda service: service.analyze_template(template_id, content)
        )
    return _json(analysis.model_dump(mode="json"), request_id)


@app.post("/v1/profiles/auto-fill")
async def auto_fill_v1(request: Request, body: AutoFillRequest) -> JSONResponse:
    request_id = _request_id_from_request(request)
    profile = await _run_service(
        lambda service: service.auto_fill_profile(body.entity_id, body.template_id, body.role)
    )
    _log_event(
        logging.INFO,
        "done",
        request_id,
        path="/v1/profiles/auto-fill",
        profile_id=profile.id,
        percentage=profile.completeness.percentage,
    )
    return _json(profile.model_dump(mode="json"), request_id)


@app.get("/v1/profiles")
async def list_profiles_v1(
    request: Request, template_id: str | None = None, entity_id: str | None = None
) -> JSONResponse:
    request_id = _request_id_from_request(request)
    profiles = await _run_service(lambda service: service.list_profiles(template_id, entity_id))
    return _json({"profiles": [item.model_dump(mode="json") for item in profiles]}, request_id)


@app.get("/v1/profiles/stats")
async def profile_stats_v1(request: Request, template_id: str | None = None) -> JSONResponse:
    """Per-template profile and usage counts."""

    request_id = _request_id_from_request(request)
    stats = await _run_service(lambda service: service.usage_stats(template_id))
    return _json({"templates": [item.model_dump(mode="json") for item in stats]}, request_id)


@app.get("/v1/profiles/{profile_id}")
async def get_profile_v1(request: Request, profile_id: str) -> JSONResponse:
    request_id = _request_id_from_request(request)
    profile = await _run_service(lambda service: service.get_profile(profile_id))
    return _json(profile.model_dump(mode="json"), request_id)


@app.post("/v1/profiles/{profile_id}/fields")
async def update_field_v1(
    request: Request, profile_id: str, body: FieldUpdateRequest
) -> JSONResponse:
    request_id = _request_id_from_request(request)
    profile = await _run_service(
        lambda service: service.update_profile_field(
            profile_id, body.template_variable, body.value, body.source_field
        )
    )
    return _json(profile.model_dump(mode="json"), request_id)


@app.get("/v1/profiles/{profile_id}/variants")
async def list_variants_v1(
    request: Request, profile_id: str, include_inactive: bool = False
) -> JSONResponse:
    request_id = _request_id_from_request(request)
    profile = await _run_service(lambda service: service.get_profile(profile_id))
    variants = profile.variants if include_inactive else profile.active_variants
    return _json(
        {
            "profile_id": profile.id,
            "variants": [item.model_dump(mode="json") for item in variants],
        },
        request_id,
    )


@app.post("/v1/profiles/{profile_id}/variants")
async def create_variant_v1(request: Request, profile_id: str, body: VariantSpec) -> JSONResponse:
    request_id = _request_id_from_request(request)
    result = await _run_service(lambda service: service.create_variant(profile_id, body))
    return _variant_response(result, request_id, status_code=201)


@app.patch("/v1/profiles/{profile_id}/variants/{variant_id}")
async def update_variant_v1(
    request: Request, profile_id: str, variant_id: str, body: VariantUpdate
) -> JSONResponse:
    request_id = _request_id_from_request(request)
    result = await _run_service(
        lambda service: service.update_variant(profile_id, variant_id, body)
    )
    return _variant_response(result, request_id)


@app.post("/v1/profiles/{profile_id}/variants/{variant_id}/default")
async def set_default_variant_v1(
    request: Request, profile_id: str, variant_id: str
) -> JSONResponse:
    request_id = _request_id_from_request(request)
    result = await _run_service(
        lambda service: service.set_default_variant(profile_id, variant_id)
    )
    return _variant_response(result, request_id)


@app.post("/v1/profiles/{profile_id}/variants/{variant_id}/clone")
async def clone_variant_v1(
    request: Request, profile_id: str, variant_id: str, body: CloneVariantRequest
) -> JSONResponse:
    request_id = _request_id_from_request(request)
    result = await _run_service(
        lambda service: service.clone_variant(profile_id, variant_id, body.new_name)
    )
    return _variant_response(result, request_id, status_code=201)


@app.delete("/v1/profiles/{profile_id}/variants/{variant_id}")
async def delete_variant_v1(request: Request, profile_id: str, variant_id: str) -> JSONResponse:
    request_id = _request_id_from_request(request)
    result = await _run_service(lambda service: service.delete_variant(profile_id, variant_id))
    return _variant_response(result, request_id)


@app.post("/v1/assemble")
async def assemble_v1(
    request: Request,
    template: Annotated[UploadFile, File(...)],
    values: Annotated[str, Form()] = "{}",
    missing_policy: Annotated[str, Form()] = "empty",
) -> JSONResponse:
    """Merge a JSON value map into an uploaded template."""

    request_id = _request_id_from_request(request)
    content = await _read_docx_upload(template, "template")
    value_map = _parse_value_map(values)
    policy = _parse_missing_policy(missing_policy)

    result = await _run_service(
        lambda service: service.assemble_document(content, value_map, missing_policy=policy)
    )
    payload = result.model_dump(mode="json", exclude={"output_bytes"})
    payload["output_base64"] = base64.b64encode(result.output_bytes).decode("ascii")

    _log_event(
        logging.INFO,
        "done",
        request_id,
        path="/v1/assemble",
        replaced_count=result.summary.replaced_count,
        missing_count=result.summary.missing_count,
    )
    return _json(payload, request_id)


@app.post("/v1/profiles/{profile_id}/generate")
async def generate_v1(request: Request, profile_id: str, body: GenerateRequest) -> JSONResponse:
    request_id = _request_id_from_request(request)
    generated = await _run_service(
        lambda service: service.generate_document(
            profile_id,
            variant_id=body.variant_id,
            overrides=body.overrides,
            missing_policy=body.missing_policy,
        )
    )
    payload = generated.model_dump(mode="json", exclude={"output_bytes"})
    payload["output_base64"] = base64.b64encode(generated.output_bytes).decode("ascii")

    _log_event(
        logging.INFO,
        "done",
        request_id,
        path="/v1/profiles/generate",
        profile_id=profile_id,
        artifact_ref=generated.artifact_ref,
    )
    return _json(payload, request_id)


def get_service() -> DocumentProfileService:
    """Return the process-wide service built from environment settings."""

    global _service_cache

    with _service_lock:
        if _service_cache is None:
            _service_cache = build_service()
        return _service_cache


def reset_service_cache() -> None:
    """Drop the cached service, closing its storage clients."""

    global _service_cache

    with _service_lock:
        service, _service_cache = _service_cache, None
    if service is not None:
        service.close()


async def _run_service(call: Callable[[DocumentProfileService], T]) -> T:
    """Run blocking service work in the worker thread pool."""

    return await run_in_threadpool(lambda: call(get_service()))


def _request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    generated = uuid.uuid4().hex
    request.state.request_id = generated
    return generated


async def _read_docx_upload(upload: UploadFile, field_name: str) -> bytes:
    if upload.filename is None or not upload.filename.lower().endswith(".docx"):
        raise ApiRequestError(
            status_code=415,
            error_code="INVALID_MEDIA_TYPE",
            message=f"{field_name} must be a .docx file",
            detail={"field": field_name, "filename": upload.filename},
        )

    max_bytes = _max_upload_bytes()
    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = await upload.read(1024 * 1024)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > max_bytes:
            raise ApiRequestError(
                status_code=413,
                error_code="UPLOAD_TOO_LARGE",
                message=f"{field_name} exceeds upload size limit",
                detail={
                    "field": field_name,
                    "max_bytes": max_bytes,
                    "received_bytes": total_size,
                },
            )
        chunks.append(chunk)
    await upload.close()

    content = b"".join(chunks)
    if content[:4] != _DOCX_MAGIC:
        raise ApiRequestError(
            status_code=415,
            error_code="INVALID_MEDIA_TYPE",
            message=f"{field_name} must be a valid .docx file",
            detail={"field": field_name},
        )
    return content


def _parse_value_map(raw: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ApiRequestError(
            status_code=422,
            error_code="VALIDATION_ERROR",
            message="values must be a JSON object",
            detail={"field": "values", "error": str(exc)},
        ) from exc
    if not isinstance(parsed, dict):
        raise ApiRequestError(
            status_code=422,
            error_code="VALIDATION_ERROR",
            message="values must be a JSON object",
            detail={"field": "values"},
        )
    return parsed


def _parse_missing_policy(raw: str) -> MissingPolicy:
    normalized = raw.strip().lower()
    if normalized == "empty":
        return "empty"
    if normalized == "keep":
        return "keep"
    raise ApiRequestError(
        status_code=422,
        error_code="VALIDATION_ERROR",
        message="missing_policy must be one of: empty, keep",
        detail={"field": "missing_policy", "value": raw},
    )


def _max_upload_bytes() -> int:
    raw = os.getenv("DOCPROFILE_MAX_UPLOAD_BYTES")
    if raw is None:
        return _DEFAULT_MAX_UPLOAD_BYTES
    try:
        parsed = int(raw)
    except ValueError:
        return _DEFAULT_MAX_UPLOAD_BYTES
    return parsed if parsed > 0 else _DEFAULT_MAX_UPLOAD_BYTES


def _core_error_status(exc: CoreError) -> tuple[int, str]:
    for error_type, status_code, error_code in _CORE_ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code, error_code
    return 500, "INTERNAL_ERROR"


def _core_error_detail(exc: CoreError) -> dict[str, Any]:
    if isinstance(exc, ValidationError) and exc.field is not None:
        return {"field": exc.field}
    if isinstance(exc, NotFoundError) and exc.available:
        return {"available": exc.available}
    if isinstance(exc, AssemblyError) and exc.marker is not None:
        return {"marker": exc.marker}
    if isinstance(exc, UnavailableError):
        return {"object_id": exc.object_id, "attempted_tiers": exc.attempted_tiers}
    return {}


def _variant_response(
    result: VariantResult, request_id: str, status_code: int = 200
) -> JSONResponse:
    return _json(
        {
            "profile_id": result.profile.id,
            "variant": result.variant.model_dump(mode="json"),
            "profile_completeness": result.profile.completeness.model_dump(mode="json"),
        },
        request_id,
        status_code=status_code,
    )


def _json(payload: dict[str, Any], request_id: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        headers={_REQUEST_ID_HEADER: request_id},
        content=payload,
    )


def _package_version() -> str:
    try:
        return importlib.metadata.version("docprofile-agent")
    except importlib.metadata.PackageNotFoundError:
        return app.version


def _error_response(
    *,
    status_code: int,
    error_code: str,
    message: str,
    request_id: str,
    detail: dict[str, Any] | None = None,
) -> JSONResponse:
    payload_detail = dict(detail or {})
    payload_detail["request_id"] = request_id

    return JSONResponse(
        status_code=status_code,
        headers={_REQUEST_ID_HEADER: request_id},
        content={
            "error_code": error_code,
            "message": message,
            "detail": payload_detail,
        },
    )


def _dump_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def _log_event(level: int, event: str, request_id: str, **fields: Any) -> None:
    payload = {
        "event": event,
        "request_id": request_id,
        **fields,
    }
    logger.log(level, _dump_json(payload))
