"""Process-wide provider registries.

Callers look providers up by protocol tag; ids are used for display and
for explicit node-type overrides.

Usage:
    registry = build_video_registry(backend)
    provider = registry.get_by_protocol("openai")
    registry.capabilities()
"""

from __future__ import annotations

import logging
from typing import Any, Generic, Iterator, TypeVar

from canvasgen.services.backend import ExecutionBackend
from canvasgen.services.gemini_direct import GeminiDirectClient
from canvasgen.services.providers.base import ImageGenerationProvider, VideoGenerationProvider
from canvasgen.services.providers.flux_image import FluxImageProvider
from canvasgen.services.providers.gemini_image import GeminiImageProvider
from canvasgen.services.providers.kling_video import KlingVideoProvider
from canvasgen.services.providers.openai_responses_image import OpenAIResponsesImageProvider
from canvasgen.services.providers.sora_video import SoraVideoProvider
from canvasgen.services.providers.veo_video import VeoVideoProvider

logger = logging.getLogger(__name__)

P = TypeVar("P", ImageGenerationProvider, VideoGenerationProvider)


# ---------------------------------------------------------------------------
# Registry class
# ---------------------------------------------------------------------------

class ProviderRegistry(Generic[P]):
    """Mutable id -> provider map; insertion order decides protocol lookups."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._providers: dict[str, P] = {}

    def register(self, provider: P) -> None:
        if provider.id in self._providers:
            logger.warning("%s provider %s already registered, replacing it", self.kind, provider.id)
        self._providers[provider.id] = provider
        logger.info("Registered %s provider %s", self.kind, provider.id)

    def unregister(self, provider_id: str) -> bool:
        return self._providers.pop(provider_id, None) is not None

    def get(self, provider_id: str) -> P | None:
        return self._providers.get(provider_id)

    def get_by_protocol(self, protocol: str) -> P | None:
        """First registered provider speaking ``protocol``, or None."""
        for provider in self._providers.values():
            if provider.protocol == protocol:
                return provider
        return None

    def has(self, provider_id: str) -> bool:
        return provider_id in self._providers

    def get_all(self) -> list[P]:
        return list(self._providers.values())

    def clear(self) -> None:
        self._providers.clear()

    def capabilities(self) -> list[dict[str, Any]]:
        """Serialize every provider's capability descriptor for API responses."""
        return [provider.describe() for provider in self._providers.values()]

    def __iter__(self) -> Iterator[P]:
        return iter(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)


# ---------------------------------------------------------------------------
# Startup wiring
# ---------------------------------------------------------------------------

def build_image_registry(
    backend: ExecutionBackend | None = None,
    direct_client: GeminiDirectClient | None = None,
) -> ProviderRegistry[ImageGenerationProvider]:
    registry: ProviderRegistry[ImageGenerationProvider] = ProviderRegistry("image")
    registry.register(GeminiImageProvider(backend, direct_client))
    registry.register(FluxImageProvider(backend))
    registry.register(OpenAIResponsesImageProvider(backend))
    logger.info("Image registry initialized: %d providers", len(registry))
    return registry


def build_video_registry(
    backend: ExecutionBackend | None = None,
) -> ProviderRegistry[VideoGenerationProvider]:
    # Sora is registered first so it answers protocol lookups for "openai".
    registry: ProviderRegistry[VideoGenerationProvider] = ProviderRegistry("video")
    registry.register(SoraVideoProvider(backend))
    registry.register(KlingVideoProvider(backend))
    registry.register(VeoVideoProvider(backend))
    logger.info("Video registry initialized: %d providers", len(registry))
    return registry
