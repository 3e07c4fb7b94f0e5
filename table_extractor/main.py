from __future__ import annotations

import argparse
import asyncio
import json
import logging
import mimetypes
import sys
from dataclasses import replace
from pathlib import Path

import uvicorn

from table_extractor.batch import extract_uploaded_file, process_batch
from table_extractor.cli import build_parser
from table_extractor.config import LOG_FORMAT, OpenRouterSettings
from table_extractor.errors import OpenRouterError
from table_extractor.logging_config import setup_logging
from table_extractor.openrouter import OpenRouterClient, filter_table_extraction_models
from table_extractor.types import UploadedFile

logger = logging.getLogger("table_extractor.cli")


def _settings(args: argparse.Namespace) -> OpenRouterSettings:
    settings = OpenRouterSettings.from_env()
    if getattr(args, "api_key", None):
        settings = replace(settings, api_key=args.api_key)
    return settings


def local_file(path: Path) -> UploadedFile:
    """Describe a file on disk the same way an HTTP upload is described."""
    content_type, _ = mimetypes.guess_type(path.name)
    return UploadedFile(
        field_name="files",
        original_name=path.name,
        filename=path.name,
        size=path.stat().st_size,
        content_type=content_type or "application/octet-stream",
        path=path,
    )


async def _extract(args: argparse.Namespace) -> int:
    paths = [Path(f) for f in args.files]
    missing = [str(p) for p in paths if not p.is_file()]
    if missing:
        logger.error("Files not found: %s", ", ".join(missing))
        return 1

    client = OpenRouterClient(_settings(args))
    summary = await process_batch(
        [local_file(p) for p in paths],
        extract_uploaded_file(client, args.model, args.prompt),
    )

    payload = json.dumps(
        {
            "success": True,
            "totalFiles": summary.total_files,
            "processedFiles": summary.processed_files,
            "results": [r.to_dict() for r in summary.results],
        },
        indent=2,
    )
    if args.output:
        Path(args.output).write_text(payload + "\n", encoding="utf-8")
        logger.info("Wrote results to %s", args.output)
    else:
        sys.stdout.write(payload + "\n")

    return 0 if summary.failed_files == 0 else 2


async def _models(args: argparse.Namespace) -> int:
    client = OpenRouterClient(_settings(args))
    models = await client.fetch_models()
    if args.table_extraction:
        models = filter_table_extraction_models(models)
    for m in models:
        sys.stdout.write(f"{m.get('id')}\n")
    return 0


def _serve(args: argparse.Namespace) -> int:
    uvicorn.run(
        "table_extractor.app:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
        reload=args.reload,
    )
    return 0


def run(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(level=args.log_level.upper(), json_logs=LOG_FORMAT == "json")

    if args.command == "serve":
        return _serve(args)
    try:
        if args.command == "extract":
            return asyncio.run(_extract(args))
        return asyncio.run(_models(args))
    except OpenRouterError as e:
        logger.error("%s", e)
        return 1


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    main()
