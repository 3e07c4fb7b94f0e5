from __future__ import annotations

import argparse

from table_extractor.config import HOST, LOG_LEVEL, PORT


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="table-extractor",
        description="Extract tables from PDFs and images through OpenRouter",
    )
    p.add_argument("--log-level", default=LOG_LEVEL, help="Python logging level (INFO, DEBUG, ...)")
    sub = p.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=HOST)
    serve.add_argument("--port", type=int, default=PORT)
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development)")

    extract = sub.add_parser("extract", help="Extract tables from local files")
    extract.add_argument("files", nargs="+", help="PDF or image files to process, in order")
    extract.add_argument("--model", required=True, help="OpenRouter model id")
    extract.add_argument("--prompt", default=None, help="Additional instructions appended to the prompt")
    extract.add_argument(
        "--api-key",
        default=None,
        help="OpenRouter API key (default from env OPENROUTER_API_KEY)",
    )
    extract.add_argument("--output", default=None, help="Write the JSON result here instead of stdout")

    models = sub.add_parser("models", help="List models available on OpenRouter")
    models.add_argument(
        "--table-extraction",
        action="store_true",
        help="Only models considered suitable for table extraction",
    )
    models.add_argument("--api-key", default=None)
    return p
