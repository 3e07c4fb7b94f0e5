"""Exception hierarchy shared by the upload, prompt and OpenRouter layers."""

from __future__ import annotations


class TableExtractorError(Exception):
    """Base class for all service errors."""


# -- Upload intake ------------------------------------------------------------


class UploadError(TableExtractorError, ValueError):
    """A multipart part was rejected before it reached extraction."""


class InvalidFileType(UploadError):
    def __init__(self, message: str = "Invalid file type") -> None:
        super().__init__(message)


class FileTooLarge(UploadError):
    def __init__(self, message: str = "File too large") -> None:
        super().__init__(message)


class TooManyFiles(UploadError):
    def __init__(self, limit: int) -> None:
        super().__init__(f"Too many files (maximum {limit})")
        self.limit = limit


# -- Extraction request builder -----------------------------------------------


class UnsupportedFileType(TableExtractorError, ValueError):
    def __init__(self, file_type: str) -> None:
        super().__init__(f"Unsupported file type: {file_type}")
        self.file_type = file_type


# -- Upstream relay -----------------------------------------------------------


class OpenRouterError(TableExtractorError, RuntimeError):
    """Failure talking to, or preparing a call to, the OpenRouter API."""


class ConfigurationError(OpenRouterError):
    """Raised before any network I/O when the call cannot be made."""


class AuthenticationRequired(ConfigurationError):
    pass


class ModelRequired(ConfigurationError):
    pass


class UpstreamError(OpenRouterError):
    """Non-2xx response or transport failure from the upstream API."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
