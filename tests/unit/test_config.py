"""Unit tests for runtime configuration and logging setup."""

from __future__ import annotations

import asyncio
import io
import json
import logging
import threading

import pytest

from table_extractor.config import (
    OPENROUTER_DEFAULT_BASE_URL,
    OPENROUTER_DEFAULT_REFERER,
    ConfigStore,
    OpenRouterSettings,
)
from table_extractor.logging_config import (
    SeverityJsonFormatter,
    bind_request_id,
    build_handler,
    generate_request_id,
    setup_logging,
)
from table_extractor.uploads import UploadPolicy


class TestOpenRouterSettings:
    def test_from_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-or-env-key-000000000000")
        monkeypatch.setenv("OPENROUTER_BASE_URL", "https://proxy.example/api/v1")
        monkeypatch.setenv("HTTP_REFERER", "https://tables.example")

        s = OpenRouterSettings.from_env()

        assert s.api_key == "sk-or-env-key-000000000000"
        assert s.base_url == "https://proxy.example/api/v1"
        assert s.http_referer == "https://tables.example"
        assert s.has_api_key

    def test_defaults_when_unset(self, monkeypatch: pytest.MonkeyPatch):
        for name in ("OPENROUTER_API_KEY", "OPENROUTER_BASE_URL", "HTTP_REFERER"):
            monkeypatch.delenv(name, raising=False)

        s = OpenRouterSettings.from_env()

        assert s.api_key == ""
        assert not s.has_api_key
        assert s.base_url == OPENROUTER_DEFAULT_BASE_URL
        assert s.http_referer == OPENROUTER_DEFAULT_REFERER


class TestConfigStore:
    def test_update_replaces_snapshot(self, settings: OpenRouterSettings):
        store = ConfigStore(settings)
        before = store.get()

        after = store.update(api_key="sk-or-new-key-0000000000000")

        assert store.get() is after
        assert after.api_key == "sk-or-new-key-0000000000000"
        # the old snapshot held by an in-flight request is untouched
        assert before.api_key == settings.api_key

    def test_empty_values_keep_current(self, settings: OpenRouterSettings):
        store = ConfigStore(settings)
        store.update(base_url="", http_referer=None)
        assert store.get() == settings

    def test_partial_update(self, settings: OpenRouterSettings):
        store = ConfigStore(settings)
        s = store.update(http_referer="https://tables.example")
        assert s.http_referer == "https://tables.example"
        assert s.api_key == settings.api_key
        assert s.base_url == settings.base_url

    def test_concurrent_updates_last_writer_wins(self, settings: OpenRouterSettings):
        store = ConfigStore(settings)
        threads = [
            threading.Thread(target=store.update, kwargs={"base_url": f"https://h{i}.example"})
            for i in range(20)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        final = store.get()
        assert final.base_url in {f"https://h{i}.example" for i in range(20)}
        assert final.api_key == settings.api_key


class TestUploadPolicy:
    def test_multipart_budget_scales_with_files(self, upload_dir):
        policy = UploadPolicy(directory=upload_dir, max_file_size=100, max_files=10)
        assert policy.multipart_budget(10) - policy.multipart_budget(1) == 900
        assert policy.multipart_budget(1) > 100

    def test_json_budget_fits_base64_file(self, upload_dir):
        policy = UploadPolicy(directory=upload_dir, max_file_size=3000, max_files=10)
        assert policy.json_budget() >= 4000
        assert policy.json_budget() < policy.multipart_budget(10)


@pytest.fixture
def captured_logger():
    buf = io.StringIO()
    log = logging.getLogger("table_extractor.tests.logging")
    log.setLevel(logging.INFO)
    log.propagate = False

    def attach(json_logs: bool) -> logging.Logger:
        log.addHandler(build_handler(json_logs=json_logs, stream=buf))
        return log

    yield attach, buf
    log.handlers.clear()
    log.propagate = True


class TestLogging:
    def test_json_formatter_when_requested(self):
        root = logging.getLogger()
        saved, level = root.handlers[:], root.level
        try:
            setup_logging(level="debug", json_logs=True)
            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, SeverityJsonFormatter)
        finally:
            root.handlers[:] = saved
            root.setLevel(level)

    def test_bound_request_id_on_json_records(self, captured_logger):
        attach, buf = captured_logger
        log = attach(json_logs=True)

        with bind_request_id("abc123"):
            log.info("inside")
        log.warning("outside")

        inside, outside = (json.loads(line) for line in buf.getvalue().splitlines())
        assert inside["message"] == "inside"
        assert inside["request_id"] == "abc123"
        assert inside["severity"] == "INFO"
        assert inside["logger"] == "table_extractor.tests.logging"
        assert "request_id" not in outside
        assert outside["severity"] == "WARNING"

    def test_text_records_show_placeholder_outside_requests(self, captured_logger):
        attach, buf = captured_logger
        log = attach(json_logs=False)

        log.info("startup")
        with bind_request_id("req-1"):
            log.info("handled")

        first, second = buf.getvalue().splitlines()
        assert "[-]" in first
        assert "[req-1]" in second

    async def test_binding_visible_in_child_tasks(self, captured_logger):
        attach, buf = captured_logger
        log = attach(json_logs=True)

        async def work() -> None:
            log.info("from task")

        with bind_request_id("task-id"):
            await asyncio.create_task(work())

        assert json.loads(buf.getvalue())["request_id"] == "task-id"

    def test_request_ids_are_unique(self):
        ids = {generate_request_id() for _ in range(100)}
        assert len(ids) == 100
        assert all(len(i) == 16 for i in ids)
