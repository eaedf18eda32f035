"""Gemini image provider (``google`` protocol).

Supports gemini-3-pro-image-preview and gemini-2.5-flash-image. Requests go
through the execution backend (``gemini_generate_content``); without a
backend they are sent directly via :class:`GeminiDirectClient`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar

from canvasgen.services.backend import GEMINI_GENERATE_CONTENT, BackendResult, ExecutionBackend
from canvasgen.services.cancellation import CancellationToken, is_cancelled
from canvasgen.services.gemini_direct import GeminiContent, GeminiDirectClient, build_generate_body
from canvasgen.services.image_data import extract_base64_image_from_text, normalize_image_input
from canvasgen.services.provider_config import ProviderConfig, ProviderProtocol
from canvasgen.services.providers.base import (
    BackendParams,
    ImageGenerationProvider,
    ImageGenerationRequest,
    ImageGenerationResponse,
    compact,
)

logger = logging.getLogger(__name__)

DEFAULT_ASPECT_RATIO = "1:1"

# Only these models accept an explicit resolution tier.
RESOLUTION_TIER_MODELS = ("gemini-3-pro-image-preview",)


@dataclass
class GeminiImageParams(BackendParams):
    command: ClassVar[str] = GEMINI_GENERATE_CONTENT

    base_url: str
    api_key: str
    model: str
    prompt: str
    aspect_ratio: str
    input_images: list[str] = field(default_factory=list)
    image_size: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return compact({
            "baseUrl": self.base_url,
            "apiKey": self.api_key,
            "model": self.model,
            "prompt": self.prompt,
            "inputImages": self.input_images,
            "aspectRatio": self.aspect_ratio,
            "imageSize": self.image_size,
        })


class GeminiImageProvider(ImageGenerationProvider):
    id = "gemini"
    name = "Google Gemini"
    protocol = ProviderProtocol.GOOGLE.value

    supported_aspect_ratios = (
        "1:1", "16:9", "9:16", "4:3", "3:4", "3:2", "2:3", "5:4", "4:5", "21:9",
    )
    supported_image_sizes = ("1K", "2K", "4K")
    max_input_images = 10

    def __init__(
        self,
        backend: ExecutionBackend | None = None,
        direct_client: GeminiDirectClient | None = None,
    ) -> None:
        super().__init__(backend)
        self.direct_client = direct_client or GeminiDirectClient()

    def build_backend_params(self, request: ImageGenerationRequest, config: ProviderConfig) -> GeminiImageParams:
        return GeminiImageParams(
            base_url=GeminiDirectClient.api_base(config.base_url),
            api_key=config.api_key,
            model=request.model,
            prompt=request.prompt,
            input_images=[normalize_image_input(img).base64 for img in request.input_images],
            aspect_ratio=request.aspect_ratio or DEFAULT_ASPECT_RATIO,
            image_size=request.image_size if request.model in RESOLUTION_TIER_MODELS else None,
        )

    def request_url(self, request: ImageGenerationRequest, config: ProviderConfig) -> str:
        return f"{GeminiDirectClient.api_base(config.base_url)}/models/{request.model}:generateContent"

    def map_result(
        self,
        result: BackendResult,
        request: ImageGenerationRequest,
        config: ProviderConfig,
    ) -> ImageGenerationResponse:
        return self._to_response(result.get("imageData"), result.get("text"), request, config)

    def _to_response(
        self,
        image_data: str | None,
        text: str | None,
        request: ImageGenerationRequest,
        config: ProviderConfig,
    ) -> ImageGenerationResponse:
        if not image_data:
            image_data = extract_base64_image_from_text(text)
            if image_data:
                logger.info("gemini: recovered image embedded in text output")
        if not image_data:
            return self._empty_result(
                request, config,
                {"success": True, "hasText": bool(text), "hasImageData": False},
                text=text,
            )
        return ImageGenerationResponse(
            image_data=image_data,
            text=text,
            metadata={"model": request.model},
        )

    async def _dispatch(
        self,
        request: ImageGenerationRequest,
        config: ProviderConfig,
        token: CancellationToken | None,
    ) -> ImageGenerationResponse:
        if self.backend is not None:
            return await super()._dispatch(request, config, token)

        logger.info("gemini: no execution backend, calling Gemini API directly")
        content = await self.direct_client.generate_content(
            base_url=config.base_url,
            api_key=config.api_key,
            model=request.model,
            body=self._direct_body(request),
        )
        return self._from_direct(content, request, config, token)

    async def generate_streaming(
        self,
        request: ImageGenerationRequest,
        config: ProviderConfig,
        on_text: Callable[[str], None] | None = None,
        token: CancellationToken | None = None,
    ) -> ImageGenerationResponse:
        """Direct streaming variant; same validation and response shape as :meth:`generate`."""
        validation = self.validate_request(request)
        if not validation.valid:
            return ImageGenerationResponse.failure(validation.error or "Invalid request")
        if is_cancelled(token):
            return ImageGenerationResponse.cancelled_result()

        try:
            content = await self.direct_client.stream_generate_content(
                base_url=config.base_url,
                api_key=config.api_key,
                model=request.model,
                body=self._direct_body(request),
                on_text=on_text,
                token=token,
            )
        except Exception as exc:
            if is_cancelled(token):
                return ImageGenerationResponse.cancelled_result()
            logger.warning("gemini streaming generation failed: %s", exc)
            return ImageGenerationResponse.failure(
                str(exc) or "Generation failed",
                self._error_details(exc, request, config),
            )
        return self._from_direct(content, request, config, token)

    def _direct_body(self, request: ImageGenerationRequest) -> dict[str, Any]:
        images = [tuple(normalize_image_input(img)) for img in request.input_images]
        return build_generate_body(
            request.prompt,
            images,
            request.aspect_ratio or DEFAULT_ASPECT_RATIO,
            request.image_size if request.model in RESOLUTION_TIER_MODELS else None,
        )

    def _from_direct(
        self,
        content: GeminiContent,
        request: ImageGenerationRequest,
        config: ProviderConfig,
        token: CancellationToken | None,
    ) -> ImageGenerationResponse:
        if is_cancelled(token):
            return ImageGenerationResponse.cancelled_result()
        return self._to_response(content.image_data, content.text, request, config)
