"""Image generation service: one round trip per call, no retries.

Resolves the credentials configured for the calling node type, picks the
provider speaking that protocol and hands the request over. Configuration
problems come back as a plain error string before anything touches the
network.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from canvasgen.services.cancellation import CancellationToken, is_cancelled
from canvasgen.services.errors import ProviderConfigError
from canvasgen.services.image_data import normalize_image_input
from canvasgen.services.provider_config import (
    IMAGE_GENERATOR_PRO,
    ProviderConfig,
    ProviderConfigResolver,
)
from canvasgen.services.providers.base import (
    ImageGenerationProvider,
    ImageGenerationRequest,
    ImageGenerationResponse,
)
from canvasgen.services.registry import ProviderRegistry

logger = logging.getLogger(__name__)


class ImageGenerationService:
    def __init__(
        self,
        registry: ProviderRegistry[ImageGenerationProvider],
        resolver: ProviderConfigResolver,
    ) -> None:
        self.registry = registry
        self.resolver = resolver

    def resolve(self, node_type: str) -> tuple[ImageGenerationProvider, ProviderConfig]:
        """Return the provider and credentials for ``node_type``.

        Raises ProviderConfigError when nothing usable is configured.
        """
        config = self.resolver.resolve(node_type)
        provider = self.registry.get_by_protocol(config.protocol)
        if provider is None:
            raise ProviderConfigError(
                f"Unsupported protocol '{config.protocol}', please check the provider configuration"
            )
        return provider, config

    async def generate_image(
        self,
        request: ImageGenerationRequest,
        node_type: str = IMAGE_GENERATOR_PRO,
        token: CancellationToken | None = None,
    ) -> ImageGenerationResponse:
        try:
            provider, config = self.resolve(node_type)
        except ProviderConfigError as exc:
            return ImageGenerationResponse.failure(str(exc))

        if is_cancelled(token):
            return ImageGenerationResponse.cancelled_result()

        logger.info("image_gen: %s via provider=%s model=%s", node_type, provider.id, request.model)
        return await provider.generate(request, config, token)

    async def edit_image(
        self,
        request: ImageGenerationRequest,
        node_type: str = IMAGE_GENERATOR_PRO,
        token: CancellationToken | None = None,
    ) -> ImageGenerationResponse:
        """Generate from a prompt plus one or more source images."""
        if not request.input_images:
            return ImageGenerationResponse.failure("Image editing requires at least one input image")
        normalized = replace(
            request,
            input_images=[normalize_image_input(img).base64 for img in request.input_images],
        )
        return await self.generate_image(normalized, node_type, token)

    def get_provider_capabilities(self, node_type: str) -> dict[str, Any] | None:
        try:
            provider, _ = self.resolve(node_type)
        except ProviderConfigError:
            return None
        return provider.describe()
