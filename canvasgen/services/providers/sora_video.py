"""Sora video provider (OpenAI Video API shape, ``openai`` protocol).

Text-to-video, or image-to-video with a single first-frame reference.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from canvasgen.services.backend import VIDEO_CREATE_TASK, VIDEO_GET_CONTENT, VIDEO_GET_STATUS
from canvasgen.services.errors import truncate_prompt
from canvasgen.services.image_data import normalize_image_input
from canvasgen.services.provider_config import ProviderConfig, ProviderProtocol
from canvasgen.services.providers.base import (
    BackendParams,
    VideoGenerationProvider,
    VideoGenerationRequest,
    compact,
    normalize_base_url,
)


@dataclass
class SoraCreateParams(BackendParams):
    command: ClassVar[str] = VIDEO_CREATE_TASK

    base_url: str
    api_key: str
    model: str
    prompt: str
    seconds: str | None = None
    size: str | None = None
    input_image: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return compact({
            "baseUrl": self.base_url,
            "apiKey": self.api_key,
            "model": self.model,
            "prompt": self.prompt,
            "seconds": self.seconds,
            "size": self.size,
            "inputImage": self.input_image,
        })


class SoraVideoProvider(VideoGenerationProvider):
    id = "sora"
    name = "OpenAI Sora"
    protocol = ProviderProtocol.OPENAI.value

    supported_sizes = ("1280x720", "720x1280", "1792x1024", "1024x1792")
    supported_durations = (10, 15, 25)
    max_input_images = 1

    status_command = VIDEO_GET_STATUS
    content_command = VIDEO_GET_CONTENT

    def build_backend_params(self, request: VideoGenerationRequest, config: ProviderConfig) -> SoraCreateParams:
        return SoraCreateParams(
            base_url=normalize_base_url(config.base_url),
            api_key=config.api_key,
            model=request.model,
            prompt=request.prompt,
            seconds=str(request.duration) if request.duration is not None else None,
            size=request.size,
            input_image=normalize_image_input(request.images[0]).base64 if request.images else None,
        )

    def request_url(self, request: VideoGenerationRequest, config: ProviderConfig) -> str:
        return f"{normalize_base_url(config.base_url)}/v1/video/generations"

    def request_summary(self, request: VideoGenerationRequest) -> dict[str, Any]:
        return {
            "model": request.model,
            "prompt": truncate_prompt(request.prompt),
            "seconds": str(request.duration) if request.duration is not None else None,
            "size": request.size,
            "hasInputImage": bool(request.images),
        }
