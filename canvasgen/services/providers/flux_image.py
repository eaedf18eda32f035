"""Flux image provider (OpenAI Images API shape, ``openai`` protocol).

Flux takes an aspect ratio instead of a pixel size and at most one
reference image.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from canvasgen.services.backend import DALLE_GENERATE_IMAGE, BackendResult
from canvasgen.services.image_data import extract_base64_image_from_text, normalize_image_input
from canvasgen.services.provider_config import ProviderConfig, ProviderProtocol
from canvasgen.services.providers.base import (
    BackendParams,
    ImageGenerationProvider,
    ImageGenerationRequest,
    ImageGenerationResponse,
    compact,
    normalize_base_url,
)

DEFAULT_ASPECT_RATIO = "1:1"


@dataclass
class FluxImageParams(BackendParams):
    command: ClassVar[str] = DALLE_GENERATE_IMAGE

    base_url: str
    api_key: str
    model: str
    prompt: str
    aspect_ratio: str
    input_images: list[str] = field(default_factory=list)
    negative_prompt: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return compact({
            "baseUrl": self.base_url,
            "apiKey": self.api_key,
            "model": self.model,
            "prompt": self.prompt,
            "inputImages": self.input_images,
            "aspectRatio": self.aspect_ratio,
            "negativePrompt": self.negative_prompt,
        })


class FluxImageProvider(ImageGenerationProvider):
    id = "flux"
    name = "Flux"
    protocol = ProviderProtocol.OPENAI.value

    supported_aspect_ratios = ("1:1", "16:9", "9:16", "4:3", "3:4", "3:2", "2:3")
    supported_image_sizes = ()
    max_input_images = 1

    def build_backend_params(self, request: ImageGenerationRequest, config: ProviderConfig) -> FluxImageParams:
        return FluxImageParams(
            base_url=normalize_base_url(config.base_url),
            api_key=config.api_key,
            model=request.model,
            prompt=request.prompt,
            input_images=[normalize_image_input(img).base64 for img in request.input_images],
            aspect_ratio=request.aspect_ratio or DEFAULT_ASPECT_RATIO,
            negative_prompt=request.negative_prompt,
        )

    def request_url(self, request: ImageGenerationRequest, config: ProviderConfig) -> str:
        return f"{normalize_base_url(config.base_url)}/v1/images/generations"

    def map_result(
        self,
        result: BackendResult,
        request: ImageGenerationRequest,
        config: ProviderConfig,
    ) -> ImageGenerationResponse:
        image_data = result.get("imageData") or extract_base64_image_from_text(result.get("revisedPrompt"))
        if not image_data:
            return self._empty_result(request, config, {
                "success": result.success,
                "imageUrl": result.get("imageUrl"),
                "revisedPrompt": result.get("revisedPrompt"),
                "hasImageData": False,
            })
        return ImageGenerationResponse(image_data=image_data, metadata={"model": request.model})
