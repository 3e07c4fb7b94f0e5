"""ASGI middleware that caps request bodies while they stream in.

The cap depends on the route: ``/upload`` may carry one file at the size
ceiling, the batch routes up to ``max_files``, and every other route one
base64-encoded file inside JSON. A declared ``Content-Length`` over the cap is
refused before anything is read. Otherwise bytes are counted as they arrive,
so a chunked body is stopped as soon as it crosses the cap.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException
from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from table_extractor.uploads import UploadPolicy

logger = logging.getLogger(__name__)

FILE_TOO_LARGE = "File too large"
BODY_TOO_LARGE = "Request body too large"

# route -> number of files its body may carry; None means policy.max_files
UPLOAD_ROUTES: dict[str, int | None] = {
    "/upload": 1,
    "/upload-multiple": None,
    "/api/process-uploaded-files": None,
}


def body_budget(policy: UploadPolicy, path: str) -> tuple[int, str]:
    """Return the byte cap for ``path`` and the error reported past it."""
    if path in UPLOAD_ROUTES:
        files = UPLOAD_ROUTES[path] or policy.max_files
        return policy.multipart_budget(files), FILE_TOO_LARGE
    return policy.json_budget(), BODY_TOO_LARGE


class BodyLimitMiddleware:
    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        policy: UploadPolicy = scope["app"].state.upload_policy
        path = scope["path"]
        limit, message = body_budget(policy, path)

        declared = Headers(scope=scope).get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > limit:
            logger.warning("Rejected %s: declared %s bytes over %d", path, declared, limit)
            response = JSONResponse({"error": message}, status_code=413)
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            msg = await receive()
            if msg["type"] == "http.request":
                received += len(msg.get("body", b""))
                if received > limit:
                    logger.warning("Rejected %s: body passed %d bytes", path, limit)
                    # raised inside body parsing, rendered by the app's error handlers
                    raise HTTPException(status_code=413, detail=message)
            return msg

        await self.app(scope, limited_receive, send)
