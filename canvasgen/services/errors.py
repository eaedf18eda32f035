"""Error taxonomy and the diagnostic ``ErrorDetails`` envelope."""

from __future__ import annotations

import json
import re
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

CANCELLED_MESSAGE = "Cancelled"
TASK_TIMEOUT_MESSAGE = "Task timed out, please try again later"
EMPTY_IMAGE_MESSAGE = "API reported success but returned no image data"
EMPTY_VIDEO_MESSAGE = "API reported success but returned no video data"

# Request bodies attached to diagnostics are cut to this many characters.
MAX_REQUEST_BODY_CHARS = 500

UNKNOWN = "unknown"

_STATUS_CODE_RE = re.compile(r"\((\d{3})\)")
_RESPONSE_BODY_RE = re.compile(r"API (?:error|返回错误)\s*\(\d{3}\)[：:]\s*([\s\S]*)")


class GenerationError(Exception):
    """Base class for errors raised inside the generation core."""


class ProviderConfigError(GenerationError):
    """No usable provider is configured for a node type."""


class BackendError(GenerationError):
    """Transport-level failure raised by an execution backend."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


@dataclass
class ErrorDetails:
    """Structured diagnostics attached to a failed generation."""

    name: str
    message: str
    timestamp: str
    model: str = UNKNOWN
    provider: str = UNKNOWN
    request_url: str = UNKNOWN
    stack: str | None = None
    cause: str | None = None
    status_code: int | None = None
    request_body: Any = None
    response_body: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the editor's camelCase keys, dropping empty fields."""
        raw = {
            "name": self.name,
            "message": self.message,
            "stack": self.stack,
            "cause": self.cause,
            "statusCode": self.status_code,
            "timestamp": self.timestamp,
            "model": self.model,
            "provider": self.provider,
            "requestUrl": self.request_url,
            "requestBody": self.request_body,
            "responseBody": self.response_body,
        }
        return {k: v for k, v in raw.items() if v is not None}


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def truncate_prompt(prompt: str) -> str:
    return prompt[:MAX_REQUEST_BODY_CHARS]


def truncate_request_body(body: dict[str, Any]) -> dict[str, Any] | str:
    """Keep diagnostics small: the serialized body never exceeds the limit."""
    serialized = json.dumps(body, ensure_ascii=False, default=str)
    if len(serialized) <= MAX_REQUEST_BODY_CHARS:
        return body
    return serialized[:MAX_REQUEST_BODY_CHARS]


def parse_error_message(message: str) -> tuple[int | None, Any]:
    """Best-effort recovery of status code and body from a backend message.

    Only used when the backend envelope does not carry them as fields.
    """
    status_code = None
    match = _STATUS_CODE_RE.search(message)
    if match:
        status_code = int(match.group(1))

    response_body: Any = None
    body_match = _RESPONSE_BODY_RE.search(message)
    if body_match:
        content = body_match.group(1).strip()
        if content:
            try:
                response_body = json.loads(content)
            except ValueError:
                response_body = content
    return status_code, response_body


def build_error_details(
    error: BaseException | str,
    *,
    model: str | None = None,
    provider: str | None = None,
    request_url: str | None = None,
    request_body: dict[str, Any] | None = None,
    status_code: int | None = None,
    response_body: Any = None,
    name: str | None = None,
) -> ErrorDetails:
    if isinstance(error, BaseException):
        message = str(error) or type(error).__name__
        error_name = type(error).__name__
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        cause = repr(error.__cause__) if error.__cause__ is not None else None
        if isinstance(error, BackendError):
            status_code = status_code if status_code is not None else error.status_code
            response_body = response_body if response_body is not None else error.response_body
    else:
        message = error
        error_name = "API_Error"
        stack = None
        cause = None

    if status_code is None or response_body is None:
        parsed_code, parsed_body = parse_error_message(message)
        if status_code is None:
            status_code = parsed_code
        if response_body is None:
            response_body = parsed_body

    return ErrorDetails(
        name=name or error_name,
        message=message,
        stack=stack,
        cause=cause,
        status_code=status_code,
        timestamp=now_iso(),
        model=model or UNKNOWN,
        provider=provider or UNKNOWN,
        request_url=request_url or UNKNOWN,
        request_body=truncate_request_body(request_body) if request_body is not None else None,
        response_body=response_body,
    )
