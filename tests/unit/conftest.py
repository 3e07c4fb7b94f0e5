"""Unit test conftest: small in-memory documents, no network."""

from __future__ import annotations

import pytest

# Not a renderable PDF, but carries the right magic bytes for the API path.
_PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"

# 1x1 transparent PNG
_PNG_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c63000100000500010d0a2db40000000049454e44ae426082"
)


@pytest.fixture
def sample_pdf_bytes() -> bytes:
    return _PDF_BYTES


@pytest.fixture
def sample_png_bytes() -> bytes:
    return _PNG_BYTES
