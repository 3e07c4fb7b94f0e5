"""FastAPI entry point for the table extractor service.

Endpoints:
- GET  /                            Service identity
- GET  /api/config                  Current OpenRouter connection settings
- POST /api/config                  Update API key / base URL / referer at runtime
- GET  /api/models                  Model catalog plus table-extraction subset
- POST /api/process-file            Extract tables from a base64 payload
- POST /api/process-uploaded-files  Extract tables from up to 10 uploaded files
- POST /upload                      Store one file
- POST /upload-multiple             Store up to 10 files
- GET  /uploads/{filename}          Download a stored file
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Annotated

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException

from table_extractor.batch import extract_uploaded_file, process_batch
from table_extractor.config import (
    APP_ENV,
    CORS_ALLOW_CREDENTIALS,
    CORS_ALLOW_HEADERS,
    CORS_ALLOW_METHODS,
    CORS_ALLOW_ORIGINS,
    LOG_FORMAT,
    LOG_LEVEL,
    RATE_LIMIT_ENABLED,
    RATE_LIMIT_PROCESS,
    RATE_LIMIT_UPLOAD,
    ConfigStore,
)
from table_extractor.errors import (
    ModelRequired,
    TableExtractorError,
    UnsupportedFileType,
    UploadError,
)
from table_extractor.logging_config import bind_request_id, generate_request_id, setup_logging
from table_extractor.models import (
    BatchResponse,
    ConfigResponse,
    ConfigUpdateRequest,
    ConfigUpdateResponse,
    FileResult,
    ModelsResponse,
    MultiUploadResponse,
    ProcessFileRequest,
    ProcessFileResponse,
    RootResponse,
    StoredFile,
    UploadResponse,
)
from table_extractor.middleware import BodyLimitMiddleware
from table_extractor.openrouter import (
    OpenRouterClient,
    filter_table_extraction_models,
    validate_api_key,
)
from table_extractor.uploads import UploadPolicy, delete_upload, save_upload, save_uploads

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: configure logging and make sure uploads can land."""
    setup_logging(level=LOG_LEVEL, json_logs=LOG_FORMAT == "json")
    app.state.upload_policy.ensure_directory()
    logger.info("Table extractor started in %s mode", APP_ENV)
    yield
    logger.info("Table extractor stopped")


app = FastAPI(
    title="Table Extractor API",
    version="0.1.0",
    lifespan=lifespan,
)

app.state.config_store = ConfigStore()
app.state.upload_policy = UploadPolicy.from_env()

# -- Rate limiting ------------------------------------------------------------

limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)
app.state.limiter = limiter


# -- Error rendering ----------------------------------------------------------


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(RateLimitExceeded)
async def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return _error(429, "Rate limit exceeded")


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404 and exc.detail == "Not Found":
        return _error(404, "Route not found")
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def _validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if not errors:
        return _error(400, "Invalid request")
    first = errors[0]
    field = ".".join(str(p) for p in first.get("loc", ())[1:])
    message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return _error(400, f"Invalid request: {message}")


@app.exception_handler(TableExtractorError)
async def _domain_error_handler(request: Request, exc: TableExtractorError) -> JSONResponse:
    if isinstance(exc, (UploadError, UnsupportedFileType, ModelRequired)):
        return _error(400, str(exc))
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return _error(500, str(exc))


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return _error(500, str(exc) or "Internal server error")


# -- Middleware ---------------------------------------------------------------
# Starlette wraps in reverse order of registration: the body limit is
# innermost, the access log outermost.

app.add_middleware(BodyLimitMiddleware)

if CORS_ALLOW_CREDENTIALS and "*" in CORS_ALLOW_ORIGINS:
    raise RuntimeError("Invalid CORS config: wildcard origin cannot be combined with credentials=true")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=CORS_ALLOW_CREDENTIALS,
    allow_methods=CORS_ALLOW_METHODS,
    allow_headers=CORS_ALLOW_HEADERS,
)

_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
}


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    response = await call_next(request)
    for name, value in _SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Bind a request ID for the duration of the request and write one access-log line."""
    request_id = request.headers.get("x-request-id") or generate_request_id()
    request.state.request_id = request_id
    started = time.perf_counter()
    with bind_request_id(request_id):
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        logger.info(
            "%s %s %d %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
    return response


# -- Dependencies -------------------------------------------------------------


def _config_store(request: Request) -> ConfigStore:
    return request.app.state.config_store  # type: ignore[no-any-return]


def _upload_policy(request: Request) -> UploadPolicy:
    return request.app.state.upload_policy  # type: ignore[no-any-return]


def _openrouter(store: Annotated[ConfigStore, Depends(_config_store)]) -> OpenRouterClient:
    """One client per request, bound to the settings snapshot current right now."""
    return OpenRouterClient(store.get())


# -- Meta ---------------------------------------------------------------------


@app.get("/", response_model=RootResponse)
async def root() -> RootResponse:
    return RootResponse(
        message="Hello from the table extractor backend!",
        timestamp=datetime.now(UTC).isoformat(),
        environment=APP_ENV,
    )


# -- Config -------------------------------------------------------------------


@app.get("/api/config", response_model=ConfigResponse)
async def get_config(store: Annotated[ConfigStore, Depends(_config_store)]) -> ConfigResponse:
    settings = store.get()
    return ConfigResponse(
        has_api_key=settings.has_api_key,
        base_url=settings.base_url,
        http_referer=settings.http_referer,
    )


@app.post("/api/config", response_model=ConfigUpdateResponse)
async def update_config(
    store: Annotated[ConfigStore, Depends(_config_store)],
    body: ConfigUpdateRequest | None = None,
) -> ConfigUpdateResponse:
    body = body or ConfigUpdateRequest()
    api_key_given = "api_key" in body.model_fields_set
    if api_key_given and not validate_api_key(body.api_key):
        raise HTTPException(status_code=400, detail="Invalid API key format")

    settings = store.update(
        api_key=body.api_key if api_key_given else None,
        base_url=body.base_url,
        http_referer=body.http_referer,
    )
    logger.info("Configuration updated (api_key_changed=%s)", api_key_given)
    return ConfigUpdateResponse(
        message="Configuration updated successfully",
        has_api_key=settings.has_api_key,
        base_url=settings.base_url,
        http_referer=settings.http_referer,
    )


# -- Models -------------------------------------------------------------------


@app.get("/api/models", response_model=ModelsResponse)
async def list_models(client: Annotated[OpenRouterClient, Depends(_openrouter)]) -> ModelsResponse:
    models = await client.fetch_models()
    return ModelsResponse(all=models, table_extraction=filter_table_extraction_models(models))


# -- Processing ---------------------------------------------------------------


@app.post("/api/process-file", response_model=ProcessFileResponse)
@limiter.limit(RATE_LIMIT_PROCESS)
async def process_file(
    request: Request,
    client: Annotated[OpenRouterClient, Depends(_openrouter)],
    body: ProcessFileRequest | None = None,
) -> ProcessFileResponse:
    """Extract tables from a base64-encoded PDF or image sent as JSON."""
    body = body or ProcessFileRequest()
    if not body.model or not body.file_content or not body.file_type:
        raise HTTPException(
            status_code=400,
            detail="Missing required parameters: model, fileContent, fileType",
        )

    result = await client.process_file(body.model, body.file_content, body.file_type, body.custom_prompt)
    return ProcessFileResponse(success=True, result=result)


@app.post(
    "/api/process-uploaded-files",
    response_model=BatchResponse,
    response_model_exclude_none=True,
)
@limiter.limit(RATE_LIMIT_PROCESS)
async def process_uploaded_files(
    request: Request,
    policy: Annotated[UploadPolicy, Depends(_upload_policy)],
    client: Annotated[OpenRouterClient, Depends(_openrouter)],
    files: Annotated[list[UploadFile] | None, File()] = None,
    model: Annotated[str | None, Form()] = None,
    custom_prompt: Annotated[str | None, Form(alias="customPrompt")] = None,
) -> BatchResponse:
    """Store uploaded files, extract each in turn, delete them afterwards.

    A failing file is reported in ``results`` and does not fail the request.
    """
    if not model:
        raise HTTPException(status_code=400, detail="Missing required parameter: model")
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")

    stored = await save_uploads(files, field_name="files", policy=policy)
    summary = await process_batch(
        stored,
        extract_uploaded_file(client, model, custom_prompt),
        cleanup=delete_upload,
    )

    return BatchResponse(
        success=True,
        total_files=summary.total_files,
        processed_files=summary.processed_files,
        results=[FileResult.model_validate(r.to_dict()) for r in summary.results],
    )


# -- Uploads ------------------------------------------------------------------


@app.post("/upload", response_model=UploadResponse)
@limiter.limit(RATE_LIMIT_UPLOAD)
async def upload_file(
    request: Request,
    policy: Annotated[UploadPolicy, Depends(_upload_policy)],
    file: Annotated[UploadFile | None, File()] = None,
) -> UploadResponse:
    if file is None:
        raise HTTPException(status_code=400, detail="No file uploaded")

    stored = await save_upload(file, field_name="file", policy=policy)
    return UploadResponse(
        message="File uploaded successfully",
        filename=stored.filename,
        original_name=stored.original_name,
        size=stored.size,
        path=str(stored.path),
    )


@app.get("/uploads/{filename}")
async def get_upload(
    filename: str,
    policy: Annotated[UploadPolicy, Depends(_upload_policy)],
) -> FileResponse:
    """Serve a stored file from the current upload directory."""
    path = policy.directory / filename
    if filename in {".", ".."} or path.name != filename or not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path)


@app.post("/upload-multiple", response_model=MultiUploadResponse)
@limiter.limit(RATE_LIMIT_UPLOAD)
async def upload_multiple(
    request: Request,
    policy: Annotated[UploadPolicy, Depends(_upload_policy)],
    files: Annotated[list[UploadFile] | None, File()] = None,
) -> MultiUploadResponse:
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")

    stored = await save_uploads(files, field_name="files", policy=policy)
    return MultiUploadResponse(
        message=f"{len(stored)} files uploaded successfully",
        files=[
            StoredFile(
                filename=f.filename,
                original_name=f.original_name,
                size=f.size,
                path=str(f.path),
            )
            for f in stored
        ],
    )
