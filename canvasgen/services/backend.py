"""Network execution backend seam.

The core never opens sockets for the provider protocols itself: every
request is handed, fully built, to a privileged host-side backend which
performs the HTTP call and answers with a flat success/error envelope.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from canvasgen.services.errors import parse_error_message

# Backend verbs (one per protocol operation)
GEMINI_GENERATE_CONTENT = "gemini_generate_content"
DALLE_GENERATE_IMAGE = "dalle_generate_image"
OPENAI_RESPONSES = "openai_responses"
VIDEO_CREATE_TASK = "video_create_task"
VIDEO_GET_STATUS = "video_get_status"
VIDEO_GET_CONTENT = "video_get_content"
KLING_CREATE_TASK = "kling_create_task"
KLING_GET_STATUS = "kling_get_status"
KLING_GET_CONTENT = "kling_get_content"
KLING_DOWNLOAD_VIDEO = "kling_download_video"
VEO_CREATE_TASK = "veo_create_task"
VEO_GET_STATUS = "veo_get_status"
VEO_GET_CONTENT = "veo_get_content"

_ENVELOPE_KEYS = {"success", "error", "statusCode", "responseBody"}


@dataclass
class BackendResult:
    """Normalized backend envelope.

    ``payload`` holds the verb-specific fields (``imageData``, ``taskId``,
    ``status``, ``videoData`` ...) exactly as the backend named them.
    """

    success: bool
    payload: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    status_code: int | None = None
    response_body: Any = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "BackendResult":
        error = raw.get("error")
        status_code = raw.get("statusCode")
        response_body = raw.get("responseBody")
        if error and (status_code is None or response_body is None):
            parsed_code, parsed_body = parse_error_message(error)
            status_code = status_code if status_code is not None else parsed_code
            response_body = response_body if response_body is not None else parsed_body
        return cls(
            success=bool(raw.get("success")),
            payload={k: v for k, v in raw.items() if k not in _ENVELOPE_KEYS},
            error=error,
            status_code=status_code,
            response_body=response_body,
        )

    def get(self, key: str, default: Any = None) -> Any:
        return self.payload.get(key, default)


@runtime_checkable
class ExecutionBackend(Protocol):
    async def invoke(self, command: str, params: dict[str, Any]) -> BackendResult:
        """Run ``command`` with camelCase ``params``; raise ``BackendError`` on transport failure."""
        ...
