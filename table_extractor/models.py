"""Pydantic request/response schemas for the HTTP API.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -- Meta ---------------------------------------------------------------------


class RootResponse(_CamelModel):
    message: str
    timestamp: str
    environment: str


class ErrorResponse(_CamelModel):
    error: str


# -- Config -------------------------------------------------------------------


class ConfigResponse(_CamelModel):
    has_api_key: bool
    base_url: str
    http_referer: str


class ConfigUpdateRequest(_CamelModel):
    api_key: str | None = None
    base_url: str | None = None
    http_referer: str | None = None


class ConfigUpdateResponse(ConfigResponse):
    message: str


# -- Models -------------------------------------------------------------------


class ModelsResponse(_CamelModel):
    all: list[dict[str, Any]]
    table_extraction: list[dict[str, Any]]


# -- Processing ---------------------------------------------------------------


class ProcessFileRequest(_CamelModel):
    model: str | None = None
    file_content: str | None = None
    file_type: str | None = None
    custom_prompt: str | None = None


class ProcessFileResponse(_CamelModel):
    success: bool
    result: str


class FileResult(_CamelModel):
    file_name: str
    file_size: int
    file_type: str
    success: bool
    result: str | None = None
    error: str | None = None


class BatchResponse(_CamelModel):
    success: bool
    total_files: int
    processed_files: int
    results: list[FileResult]


# -- Uploads ------------------------------------------------------------------


class StoredFile(_CamelModel):
    filename: str
    original_name: str
    size: int
    path: str


class UploadResponse(StoredFile):
    message: str


class MultiUploadResponse(_CamelModel):
    message: str
    files: list[StoredFile]
