"""Gemini Veo video provider.

Modes, chosen by what the request carries:

* no images: text-to-video
* one image: image-to-video (first frame)
* two images: first/last frame interpolation, fixed at 8 seconds
* reference images (metadata only): up to three asset references, 8 seconds,
  standard models only

Veo takes an aspect ratio rather than a pixel size.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from canvasgen.services.backend import VEO_CREATE_TASK, VEO_GET_CONTENT, VEO_GET_STATUS
from canvasgen.services.errors import truncate_prompt
from canvasgen.services.image_data import normalize_image_input
from canvasgen.services.provider_config import ProviderConfig, ProviderProtocol
from canvasgen.services.providers.base import (
    BackendParams,
    ReferenceImage,
    ValidationResult,
    VideoGenerationProvider,
    VideoGenerationRequest,
    compact,
    normalize_base_url,
)

FIXED_DURATION = 8
MAX_REFERENCE_IMAGES = 3


def reference_image_payload(ref: ReferenceImage) -> dict[str, Any]:
    normalized = normalize_image_input(ref.data)
    return {
        "image": {
            "bytesBase64Encoded": normalized.base64,
            "mimeType": ref.mime_type or normalized.mime_type,
        },
        "referenceType": "asset",
    }


@dataclass
class VeoCreateParams(BackendParams):
    command: ClassVar[str] = VEO_CREATE_TASK

    base_url: str
    api_key: str
    model: str
    prompt: str
    images: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return compact({
            "baseUrl": self.base_url,
            "apiKey": self.api_key,
            "model": self.model,
            "prompt": self.prompt,
            "images": self.images,
            "metadata": self.metadata,
        })


class VeoVideoProvider(VideoGenerationProvider):
    id = "veo"
    name = "Gemini Veo"
    protocol = ProviderProtocol.OPENAI.value

    supported_aspect_ratios = ("16:9", "9:16")
    supported_durations = (4, 6, 8)
    max_input_images = 2

    status_command = VEO_GET_STATUS
    content_command = VEO_GET_CONTENT

    def validate_request(self, request: VideoGenerationRequest) -> ValidationResult:
        if not request.prompt or not request.prompt.strip():
            return ValidationResult.fail("Prompt must not be empty")

        references = request.metadata.reference_images
        if len(request.images) == 2:
            if request.duration and request.duration != FIXED_DURATION:
                return ValidationResult.fail(
                    f"Frame interpolation requires a duration of {FIXED_DURATION} seconds"
                )
            if references:
                return ValidationResult.fail("Frame interpolation cannot be combined with reference images")

        if references:
            if request.images:
                return ValidationResult.fail("Reference images cannot be combined with input images")
            if request.duration and request.duration != FIXED_DURATION:
                return ValidationResult.fail(
                    f"Reference images require a duration of {FIXED_DURATION} seconds"
                )
            if len(references) > MAX_REFERENCE_IMAGES:
                return ValidationResult.fail(f"At most {MAX_REFERENCE_IMAGES} reference images are allowed")
            if "fast" in request.model:
                return ValidationResult.fail("Fast models do not support reference images")

        return super().validate_request(request)

    def build_backend_params(self, request: VideoGenerationRequest, config: ProviderConfig) -> VeoCreateParams:
        meta = request.metadata
        return VeoCreateParams(
            base_url=normalize_base_url(config.base_url),
            api_key=config.api_key,
            model=request.model,
            prompt=request.prompt,
            images=[normalize_image_input(img).base64 for img in request.images],
            metadata=compact({
                "aspectRatio": request.aspect_ratio,
                "durationSeconds": request.duration or None,
                "negativePrompt": meta.negative_prompt or None,
                "personGeneration": meta.person_generation or None,
                "referenceImages": [reference_image_payload(ref) for ref in meta.reference_images],
            }),
        )

    def request_url(self, request: VideoGenerationRequest, config: ProviderConfig) -> str:
        return f"{normalize_base_url(config.base_url)}/v1/videos"

    def request_summary(self, request: VideoGenerationRequest) -> dict[str, Any]:
        return {
            "model": request.model,
            "prompt": truncate_prompt(request.prompt),
            "imagesCount": len(request.images),
            "aspectRatio": request.aspect_ratio,
            "durationSeconds": request.duration,
            "referenceImagesCount": len(request.metadata.reference_images),
        }
