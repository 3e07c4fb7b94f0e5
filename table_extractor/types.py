from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class UploadedFile:
    field_name: str
    original_name: str
    filename: str  # assigned storage name
    size: int
    content_type: str
    path: Path

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


@dataclass(frozen=True)
class ExtractionResult:
    file_name: str
    file_size: int
    file_type: str
    success: bool
    result: str | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if (self.result is None) == (self.error is None):
            raise ValueError("ExtractionResult needs exactly one of result or error")
        if self.success != (self.result is not None):
            raise ValueError("ExtractionResult success flag disagrees with its payload")

    @classmethod
    def succeeded(cls, file: UploadedFile, text: str) -> ExtractionResult:
        return cls(
            file_name=file.original_name,
            file_size=file.size,
            file_type=file.content_type,
            success=True,
            result=text,
        )

    @classmethod
    def failed(cls, file: UploadedFile, message: str) -> ExtractionResult:
        return cls(
            file_name=file.original_name,
            file_size=file.size,
            file_type=file.content_type,
            success=False,
            error=message,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "fileType": self.file_type,
            "success": self.success,
        }
        if self.success:
            out["result"] = self.result
        else:
            out["error"] = self.error
        return out


@dataclass(frozen=True)
class BatchSummary:
    results: list[ExtractionResult]
    total_files: int

    @property
    def processed_files(self) -> int:
        return len(self.results)

    @property
    def failed_files(self) -> int:
        return sum(1 for r in self.results if not r.success)
