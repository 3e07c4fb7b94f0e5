"""Shared test fixtures for the table-extractor test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from table_extractor.config import OpenRouterSettings

VALID_API_KEY = "sk-or-v1-" + "a" * 32
TEST_BASE_URL = "https://openrouter.test/api/v1"


@pytest.fixture
def settings() -> OpenRouterSettings:
    return OpenRouterSettings(
        api_key=VALID_API_KEY,
        base_url=TEST_BASE_URL,
        http_referer="http://localhost:3000",
        app_title="Test Table Converter",
        timeout_seconds=5.0,
    )


@pytest.fixture
def upload_dir(tmp_path: Path) -> Path:
    d = tmp_path / "uploads"
    d.mkdir()
    return d
