"""Sequential per-file extraction with partial-failure semantics."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from table_extractor.openrouter import OpenRouterClient
from table_extractor.prompt import encode_file
from table_extractor.types import BatchSummary, ExtractionResult, UploadedFile

logger = logging.getLogger(__name__)

Extract = Callable[[UploadedFile], Awaitable[str]]
Cleanup = Callable[[UploadedFile], None]


async def process_batch(
    files: Sequence[UploadedFile],
    extract: Extract,
    cleanup: Cleanup | None = None,
) -> BatchSummary:
    """Run ``extract`` over ``files`` one at a time.

    Every file yields exactly one ``ExtractionResult``; a failing file never
    stops the batch. ``cleanup`` runs after each file whatever the outcome,
    and its own failures are only logged.
    """
    results: list[ExtractionResult] = []
    for file in files:
        try:
            text = await extract(file)
            results.append(ExtractionResult.succeeded(file, text))
        except Exception as e:
            logger.error("Error processing %s: %s", file.original_name, e)
            results.append(ExtractionResult.failed(file, str(e) or e.__class__.__name__))
        finally:
            if cleanup is not None:
                try:
                    cleanup(file)
                except Exception:
                    logger.warning("Cleanup failed for %s", file.path, exc_info=True)

    summary = BatchSummary(results=results, total_files=len(files))
    logger.info(
        "Batch done: %d files, %d failed",
        summary.processed_files,
        summary.failed_files,
    )
    return summary


def extract_uploaded_file(
    client: OpenRouterClient,
    model: str,
    custom_prompt: str | None = None,
) -> Extract:
    """Per-file step: read the stored bytes, base64 them, send to the model."""

    async def _extract(file: UploadedFile) -> str:
        loop = asyncio.get_running_loop()
        payload = await loop.run_in_executor(None, encode_file, file.path)
        return await client.process_file(model, payload, file.content_type, custom_prompt)

    return _extract
