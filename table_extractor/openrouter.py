"""OpenRouter chat-completion client.

Sends one multimodal user message per document and unwraps whatever envelope
the routed provider answers with. There is no retry: a failed
upstream call is terminal for that file.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

import httpx

from table_extractor.config import (
    OPENROUTER_MAX_TOKENS,
    OPENROUTER_TEMPERATURE,
    OpenRouterSettings,
)
from table_extractor.errors import AuthenticationRequired, ModelRequired, UpstreamError
from table_extractor.prompt import build_multimodal_content

logger = logging.getLogger(__name__)

API_KEY_PREFIX = "sk-or-"
_API_KEY_LENGTH_FLOOR = 20

TABLE_EXTRACTION_KEYWORDS = ("vision", "gpt-4-vision", "claude-3", "gemini")
TABLE_EXTRACTION_MIN_CONTEXT = 8000


def validate_api_key(api_key: str | None) -> bool:
    """Format check only; does not contact OpenRouter."""
    if not api_key:
        return False
    return len(api_key) > _API_KEY_LENGTH_FLOOR and api_key.startswith(API_KEY_PREFIX)


def _context_length(model: dict[str, Any]) -> float:
    value = model.get("context_length")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value


def filter_table_extraction_models(models: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Heuristic subset of models likely to read tables out of documents.

    A model qualifies if its id mentions a vision-capable family or its
    advertised context window is at least 8000 tokens. A missing or
    non-numeric ``context_length`` counts as zero.
    """
    selected = []
    for model in models:
        model_id = str(model.get("id", "")).lower()
        context_length = _context_length(model)
        if any(k in model_id for k in TABLE_EXTRACTION_KEYWORDS) or context_length >= TABLE_EXTRACTION_MIN_CONTEXT:
            selected.append(model)
    return selected


# -- Response unwrapping ------------------------------------------------------


def _match_choices(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    choices = body.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    contents = []
    for choice in choices:
        message = choice.get("message") if isinstance(choice, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, str):
            contents.append(content)
    return "\n".join(contents) if contents else None


def _match_output_text(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    output = body.get("output")
    if isinstance(output, dict) and isinstance(output.get("text"), str) and output["text"]:
        return output["text"]
    return None


def _match_content(body: Any) -> str | None:
    if isinstance(body, dict) and isinstance(body.get("content"), str) and body["content"]:
        return body["content"]
    return None


def _match_raw_string(body: Any) -> str | None:
    return body if isinstance(body, str) else None


# Tried in order; the first non-None wins.
RESPONSE_MATCHERS: tuple[Callable[[Any], str | None], ...] = (
    _match_choices,
    _match_output_text,
    _match_content,
    _match_raw_string,
)


def extract_response_text(body: Any) -> str:
    """Unwrap a chat-completion response body into a single string.

    An unrecognised envelope is serialized whole instead of raising, so the
    caller still gets whatever the model produced.
    """
    for matcher in RESPONSE_MATCHERS:
        text = matcher(body)
        if text is not None:
            return text
    logger.warning("Unexpected OpenRouter response structure; returning raw body")
    return json.dumps(body)


def _error_message(resp: httpx.Response) -> str:
    fallback = f"HTTP {resp.status_code}: {resp.reason_phrase}" if resp.reason_phrase else f"HTTP {resp.status_code}"
    try:
        data = resp.json()
    except ValueError:
        logger.warning("Could not parse OpenRouter error response (status %d)", resp.status_code)
        return fallback
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if data.get("message"):
            return str(data["message"])
    return fallback


# -- Client -------------------------------------------------------------------


class OpenRouterClient:
    """Thin async client bound to one ``OpenRouterSettings`` snapshot."""

    def __init__(
        self,
        settings: OpenRouterSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    @property
    def settings(self) -> OpenRouterSettings:
        return self._settings

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self._settings.http_referer,
            "X-Title": self._settings.app_title,
        }

    def _url(self, path: str) -> str:
        return f"{self._settings.base_url.rstrip('/')}/{path.lstrip('/')}"

    async def _request(self, method: str, path: str, *, json_body: dict[str, Any] | None = None) -> Any:
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.timeout_seconds,
                transport=self._transport,
            ) as client:
                resp = await client.request(method, self._url(path), headers=self._headers(), json=json_body)
        except httpx.HTTPError as e:
            logger.error("OpenRouter %s %s failed: %s", method, path, e)
            raise UpstreamError(f"Upstream request failed: {e}") from e

        if not resp.is_success:
            message = _error_message(resp)
            logger.error("OpenRouter %s %s returned %d: %s", method, path, resp.status_code, message)
            raise UpstreamError(message, status_code=resp.status_code)

        try:
            return resp.json()
        except ValueError:
            # Some providers answer with a bare text body.
            return resp.text

    async def fetch_models(self) -> list[dict[str, Any]]:
        if not self._settings.api_key:
            raise AuthenticationRequired("API key is required to fetch models")
        data = await self._request("GET", "/models")
        models = data.get("data") if isinstance(data, dict) else None
        return list(models or [])

    async def chat_completion(
        self,
        model: str,
        content: list[dict[str, Any]] | str,
        *,
        max_tokens: int = OPENROUTER_MAX_TOKENS,
        temperature: float = OPENROUTER_TEMPERATURE,
        priority: str | None = None,
    ) -> str:
        """Send one user message and return the model's reply text.

        Raises:
            AuthenticationRequired: No API key configured.
            ModelRequired: Empty model id.
            UpstreamError: Non-2xx response or transport failure.
        """
        if not self._settings.api_key:
            raise AuthenticationRequired("API key is required for chat completion")
        if not model:
            raise ModelRequired("Model is required for chat completion")

        body: dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": content}],
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": False,
        }
        if priority == "latency":
            body["provider"] = {"sort": "latency"}

        data = await self._request("POST", "/chat/completions", json_body=body)
        if isinstance(data, dict):
            logger.debug("OpenRouter response keys: %s", sorted(data))
        return extract_response_text(data)

    async def process_file(
        self,
        model: str,
        file_content_b64: str,
        file_type: str,
        custom_prompt: str | None = None,
    ) -> str:
        content = build_multimodal_content(file_content_b64, file_type, custom_prompt)
        return await self.chat_completion(model, content, priority="latency")
