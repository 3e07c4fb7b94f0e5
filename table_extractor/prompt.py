"""Builds the multimodal chat message sent to the model for one document.

The message content is always two blocks, in order: the text instruction and
the file itself as a base64 data URL. The caller's filename is never sent;
the model sees ``document.pdf`` or ``image.<subtype>`` instead.
"""

from __future__ import annotations

import base64
from pathlib import Path
from typing import Any, Literal

from table_extractor.errors import UnsupportedFileType

FileKind = Literal["pdf", "image"]

PDF_MIME = "application/pdf"

EXTRACTION_INSTRUCTION = (
    "Please analyze the attached {subject} and extract all tabular data. "
    "Extract every row of every table; do not summarize or skip rows. "
    'Return the data in JSON format with the structure: {{"data": [{{ "column": "value" }}]}}, '
    "one object per row keyed by the column headers. "
    "If there are multiple tables, separate them clearly. "
    "Focus on extracting numerical data, text, and maintaining the original "
    "structure as much as possible."
)


def classify_mime(file_type: str) -> FileKind:
    if file_type == PDF_MIME:
        return "pdf"
    if file_type.startswith("image/"):
        return "image"
    raise UnsupportedFileType(file_type)


def placeholder_filename(file_type: str) -> str:
    if classify_mime(file_type) == "pdf":
        return "document.pdf"
    return f"image.{file_type.split('/', 1)[1]}"


def to_data_url(file_type: str, payload_b64: str) -> str:
    return f"data:{file_type};base64,{payload_b64}"


def compose_instruction(file_type: str, custom_prompt: str | None = None) -> str:
    subject = "PDF document" if classify_mime(file_type) == "pdf" else "image"
    text = EXTRACTION_INSTRUCTION.format(subject=subject)
    if custom_prompt and custom_prompt.strip():
        text += f"\n\nAdditional instructions:\n{custom_prompt}"
    return text


def build_multimodal_content(
    file_content_b64: str,
    file_type: str,
    custom_prompt: str | None = None,
) -> list[dict[str, Any]]:
    """Return ``[text block, file block]`` for a chat-completion user message.

    Raises:
        UnsupportedFileType: If ``file_type`` is neither a PDF nor an image.
    """
    classify_mime(file_type)
    return [
        {"type": "text", "text": compose_instruction(file_type, custom_prompt)},
        {
            "type": "file",
            "file": {
                "filename": placeholder_filename(file_type),
                "file_data": to_data_url(file_type, file_content_b64),
            },
        },
    ]


def encode_file(path: Path) -> str:
    return base64.b64encode(path.read_bytes()).decode("ascii")
