"""Unit tests for upload intake: allow-list, size ceiling, naming, cleanup."""

from __future__ import annotations

import io
import logging
import re
from pathlib import Path
from unittest.mock import patch

import pytest
from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import Headers

from table_extractor.errors import FileTooLarge, InvalidFileType, TooManyFiles
from table_extractor.types import UploadedFile
from table_extractor.uploads import (
    UploadPolicy,
    delete_upload,
    save_upload,
    save_uploads,
    storage_name,
    validate_file_type,
)


def _upload(data: bytes, filename: str, content_type: str, *, known_size: bool = True) -> UploadFile:
    return UploadFile(
        file=io.BytesIO(data),
        filename=filename,
        size=len(data) if known_size else None,
        headers=Headers({"content-type": content_type}),
    )


@pytest.fixture
def policy(upload_dir: Path) -> UploadPolicy:
    return UploadPolicy(directory=upload_dir, max_file_size=1024, max_files=3)


class TestValidateFileType:
    @pytest.mark.parametrize(
        ("filename", "content_type"),
        [
            ("scan.PNG", "image/png"),
            ("photo.jpg", "image/jpeg"),
            ("photo.jpeg", "image/jpeg"),
            ("anim.gif", "image/gif"),
            ("report.pdf", "application/pdf"),
            ("notes.txt", "text/plain; charset=utf-8"),
            ("rows.json", "application/json"),
            ("memo.doc", "application/msword"),
            (
                "memo.docx",
                "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            ),
        ],
    )
    def test_allowed(self, filename: str, content_type: str):
        validate_file_type(filename, content_type)

    @pytest.mark.parametrize(
        ("filename", "content_type"),
        [
            ("scan.png", "application/pdf"),  # extension and MIME disagree
            ("report.pdf", "image/png"),
            ("setup.exe", "application/pdf"),
            ("report.pdf", "application/x-msdownload"),
            ("noextension", "image/png"),
            ("scan.png", None),
            (None, "image/png"),
        ],
    )
    def test_rejected(self, filename, content_type):
        with pytest.raises(InvalidFileType, match="Invalid file type"):
            validate_file_type(filename, content_type)


class TestStorageName:
    def test_format(self):
        with (
            patch("table_extractor.uploads.time.time", return_value=1700000000.5),
            patch("table_extractor.uploads.random.randint", return_value=42),
        ):
            assert storage_name("file", "Scan.PNG") == "file-1700000000500-42.png"

    def test_pattern_and_uniqueness(self):
        names = {storage_name("files", "report.pdf") for _ in range(50)}
        assert len(names) == 50
        for name in names:
            assert re.fullmatch(r"files-\d+-\d+\.pdf", name)


class TestSaveUpload:
    async def test_stores_file(self, policy: UploadPolicy, sample_png_bytes: bytes):
        stored = await save_upload(
            _upload(sample_png_bytes, "scan.png", "image/png"),
            field_name="file",
            policy=policy,
        )

        assert stored.original_name == "scan.png"
        assert stored.size == len(sample_png_bytes)
        assert stored.content_type == "image/png"
        assert stored.path.parent == policy.directory
        assert stored.filename.startswith("file-")
        assert stored.path.read_bytes() == sample_png_bytes

    async def test_mime_parameters_stripped(self, policy: UploadPolicy):
        stored = await save_upload(
            _upload(b"a,b\n", "notes.txt", "text/plain; charset=utf-8"),
            field_name="file",
            policy=policy,
        )
        assert stored.content_type == "text/plain"

    async def test_invalid_type_writes_nothing(self, policy: UploadPolicy, sample_pdf_bytes: bytes):
        with pytest.raises(InvalidFileType):
            await save_upload(
                _upload(sample_pdf_bytes, "scan.png", "application/pdf"),
                field_name="file",
                policy=policy,
            )
        assert list(policy.directory.iterdir()) == []

    async def test_declared_size_over_limit_rejected_before_copy(self, policy: UploadPolicy):
        with pytest.raises(FileTooLarge, match="File too large"):
            await save_upload(
                _upload(b"x" * 2048, "big.pdf", "application/pdf"),
                field_name="file",
                policy=policy,
            )
        assert list(policy.directory.iterdir()) == []

    async def test_streamed_size_over_limit_removes_partial(self, policy: UploadPolicy):
        with pytest.raises(FileTooLarge):
            await save_upload(
                _upload(b"x" * 2048, "big.pdf", "application/pdf", known_size=False),
                field_name="file",
                policy=policy,
            )
        assert list(policy.directory.iterdir()) == []

    async def test_exactly_at_limit_accepted(self, policy: UploadPolicy):
        stored = await save_upload(
            _upload(b"x" * 1024, "edge.pdf", "application/pdf"),
            field_name="file",
            policy=policy,
        )
        assert stored.size == 1024

    async def test_disk_writes_run_off_the_event_loop(self, policy: UploadPolicy, sample_pdf_bytes: bytes):
        with patch("table_extractor.uploads.run_in_threadpool", wraps=run_in_threadpool) as spy:
            stored = await save_upload(
                _upload(sample_pdf_bytes, "a.pdf", "application/pdf"),
                field_name="file",
                policy=policy,
            )

        assert spy.call_count == 1
        assert spy.call_args.args[1] == sample_pdf_bytes
        assert stored.path.read_bytes() == sample_pdf_bytes

    async def test_creates_missing_directory(self, tmp_path: Path):
        policy = UploadPolicy(directory=tmp_path / "nested" / "uploads", max_file_size=1024)
        stored = await save_upload(
            _upload(b"%PDF-1.4", "a.pdf", "application/pdf"),
            field_name="file",
            policy=policy,
        )
        assert stored.path.exists()


class TestSaveUploads:
    async def test_saves_all(self, policy: UploadPolicy, sample_pdf_bytes: bytes):
        stored = await save_uploads(
            [
                _upload(sample_pdf_bytes, "a.pdf", "application/pdf"),
                _upload(sample_pdf_bytes, "a.pdf", "application/pdf"),
            ],
            field_name="files",
            policy=policy,
        )
        assert len(stored) == 2
        assert stored[0].filename != stored[1].filename
        assert len(list(policy.directory.iterdir())) == 2

    async def test_too_many_files(self, policy: UploadPolicy):
        uploads = [_upload(b"%PDF", f"{i}.pdf", "application/pdf") for i in range(4)]
        with pytest.raises(TooManyFiles):
            await save_uploads(uploads, field_name="files", policy=policy)
        assert list(policy.directory.iterdir()) == []

    async def test_rejection_removes_earlier_files(self, policy: UploadPolicy, sample_pdf_bytes: bytes):
        uploads = [
            _upload(sample_pdf_bytes, "good.pdf", "application/pdf"),
            _upload(sample_pdf_bytes, "bad.png", "application/pdf"),
        ]
        with pytest.raises(InvalidFileType):
            await save_uploads(uploads, field_name="files", policy=policy)
        assert list(policy.directory.iterdir()) == []


class TestDeleteUpload:
    def test_removes_file(self, upload_dir: Path):
        path = upload_dir / "files-1-1.pdf"
        path.write_bytes(b"%PDF")
        delete_upload(UploadedFile("files", "a.pdf", path.name, 4, "application/pdf", path))
        assert not path.exists()

    def test_missing_file_only_logged(self, upload_dir: Path, caplog: pytest.LogCaptureFixture):
        path = upload_dir / "gone.pdf"
        with caplog.at_level(logging.WARNING, logger="table_extractor.uploads"):
            delete_upload(UploadedFile("files", "a.pdf", path.name, 4, "application/pdf", path))
        assert "Error cleaning up file" in caplog.text
