"""Direct Gemini ``generateContent`` client.

Used only when no execution backend is available: the request goes straight
to the Google endpoint over httpx. Both the plain and the SSE streaming
variants reduce the response to the same (image, text) pair.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from canvasgen.services.cancellation import CancellationToken, is_cancelled
from canvasgen.services.errors import BackendError

logger = logging.getLogger(__name__)

_SSE_PREFIX = "data:"


@dataclass
class GeminiContent:
    image_data: str | None = None
    mime_type: str | None = None
    text: str | None = None


def build_generate_body(
    prompt: str,
    images: list[tuple[str, str]],
    aspect_ratio: str,
    image_size: str | None = None,
) -> dict[str, Any]:
    """``images`` is a list of (mime_type, base64) pairs."""
    parts: list[dict[str, Any]] = [{"text": prompt}]
    for mime_type, data in images:
        parts.append({"inline_data": {"mime_type": mime_type, "data": data}})

    image_config: dict[str, Any] = {"aspectRatio": aspect_ratio}
    if image_size:
        image_config["imageSize"] = image_size

    return {
        "contents": [{"role": "user", "parts": parts}],
        "generationConfig": {
            "responseModalities": ["IMAGE", "TEXT"],
            "imageConfig": image_config,
        },
    }


def _iter_parts(payload: dict[str, Any]):
    for candidate in payload.get("candidates") or []:
        content = candidate.get("content") or {}
        for part in content.get("parts") or []:
            yield part


def _inline(part: dict[str, Any]) -> dict[str, Any] | None:
    # REST answers camelCase; some proxies echo the snake_case request shape.
    return part.get("inlineData") or part.get("inline_data")


def extract_content(payload: dict[str, Any]) -> GeminiContent:
    """Pull the last inline image and the concatenated text out of a response."""
    result = GeminiContent()
    texts: list[str] = []
    for part in _iter_parts(payload):
        inline = _inline(part)
        if inline and inline.get("data"):
            result.image_data = inline["data"]
            result.mime_type = inline.get("mimeType") or inline.get("mime_type")
        elif part.get("text"):
            texts.append(part["text"])
    if texts:
        result.text = "".join(texts)
    return result


def _raise_for_status(response: httpx.Response, body_text: str) -> None:
    if response.is_success:
        return
    try:
        parsed: Any = json.loads(body_text)
    except ValueError:
        parsed = body_text or None
    raise BackendError(
        f"API error ({response.status_code}): {body_text}",
        status_code=response.status_code,
        response_body=parsed,
    )


class GeminiDirectClient:
    """Thin httpx wrapper around the Gemini REST endpoints."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 180.0,
    ) -> None:
        self._http_client = http_client
        self._timeout = timeout

    @staticmethod
    def api_base(base_url: str) -> str:
        return f"{base_url.rstrip('/')}/v1beta"

    def _client(self) -> tuple[httpx.AsyncClient, bool]:
        if self._http_client is not None:
            return self._http_client, False
        return httpx.AsyncClient(timeout=self._timeout), True

    async def generate_content(
        self,
        *,
        base_url: str,
        api_key: str,
        model: str,
        body: dict[str, Any],
    ) -> GeminiContent:
        url = f"{self.api_base(base_url)}/models/{model}:generateContent"
        client, own_client = self._client()
        try:
            response = await client.post(url, json=body, headers={"x-goog-api-key": api_key})
            _raise_for_status(response, response.text)
            return extract_content(response.json())
        finally:
            if own_client:
                await client.aclose()

    async def stream_generate_content(
        self,
        *,
        base_url: str,
        api_key: str,
        model: str,
        body: dict[str, Any],
        on_text: Callable[[str], None] | None = None,
        token: CancellationToken | None = None,
    ) -> GeminiContent:
        url = f"{self.api_base(base_url)}/models/{model}:streamGenerateContent"
        client, own_client = self._client()
        result = GeminiContent()
        texts: list[str] = []
        try:
            async with client.stream(
                "POST",
                url,
                params={"alt": "sse"},
                json=body,
                headers={"x-goog-api-key": api_key},
            ) as response:
                if not response.is_success:
                    body_text = (await response.aread()).decode("utf-8", errors="replace")
                    _raise_for_status(response, body_text)

                async for line in response.aiter_lines():
                    if is_cancelled(token):
                        logger.info("Gemini stream for %s abandoned after cancellation", model)
                        break
                    line = line.strip()
                    if not line.startswith(_SSE_PREFIX):
                        continue
                    data = line[len(_SSE_PREFIX):].strip()
                    if not data or data == "[DONE]":
                        continue
                    try:
                        chunk = json.loads(data)
                    except ValueError:
                        logger.debug("Skipping malformed SSE chunk: %.80s", data)
                        continue

                    piece = extract_content(chunk)
                    if piece.image_data:
                        result.image_data = piece.image_data
                        result.mime_type = piece.mime_type
                    if piece.text:
                        texts.append(piece.text)
                        if on_text is not None:
                            on_text(piece.text)
        finally:
            if own_client:
                await client.aclose()

        if texts:
            result.text = "".join(texts)
        return result
