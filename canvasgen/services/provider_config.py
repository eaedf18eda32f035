"""Resolve a node type to the provider credentials configured for it."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, Mapping

from canvasgen.config import ProviderEntry, Settings
from canvasgen.services.errors import ProviderConfigError


class ProviderProtocol(str, enum.Enum):
    """Wire-format family a provider speaks."""

    GOOGLE = "google"
    OPENAI = "openai"
    OPENAI_RESPONSES = "openaiResponses"
    CLAUDE = "claude"


# Editor node types
IMAGE_GENERATOR_PRO = "imageGeneratorPro"
IMAGE_GENERATOR_FAST = "imageGeneratorFast"
VIDEO_GENERATOR = "videoGenerator"
KLING_GENERATOR = "klingGenerator"
VEO_GENERATOR = "veoGenerator"

IMAGE_NODE_TYPES = (IMAGE_GENERATOR_PRO, IMAGE_GENERATOR_FAST)
VIDEO_NODE_TYPES = (VIDEO_GENERATOR, KLING_GENERATOR, VEO_GENERATOR)


@dataclass(frozen=True)
class ProviderConfig:
    api_key: str
    base_url: str
    protocol: str
    name: str


class ProviderConfigResolver:
    """Node type -> provider entry id -> ``ProviderConfig``."""

    def __init__(
        self,
        providers: Iterable[ProviderEntry],
        node_providers: Mapping[str, str],
    ) -> None:
        self._providers = {p.id: p for p in providers}
        self._node_providers = dict(node_providers)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProviderConfigResolver":
        return cls(settings.PROVIDERS, settings.NODE_PROVIDERS)

    def resolve(self, node_type: str) -> ProviderConfig:
        provider_id = self._node_providers.get(node_type)
        if not provider_id:
            raise ProviderConfigError(
                f"No provider configured for node type '{node_type}'"
            )

        entry = self._providers.get(provider_id)
        if entry is None:
            raise ProviderConfigError(
                f"Provider '{provider_id}' does not exist, please reconfigure"
            )

        if not entry.api_key:
            raise ProviderConfigError(f"API key for provider '{entry.name}' is not set")

        return ProviderConfig(
            api_key=entry.api_key,
            base_url=entry.base_url,
            protocol=entry.protocol,
            name=entry.name,
        )
