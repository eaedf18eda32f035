"""Startup wiring: build every long-lived component once, in dependency order."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from canvasgen.config import Settings, get_settings
from canvasgen.services.backend import ExecutionBackend
from canvasgen.services.gemini_direct import GeminiDirectClient
from canvasgen.services.image_gen import ImageGenerationService
from canvasgen.services.provider_config import ProviderConfigResolver
from canvasgen.services.providers.base import ImageGenerationProvider, VideoGenerationProvider
from canvasgen.services.registry import ProviderRegistry, build_image_registry, build_video_registry
from canvasgen.services.task_manager import TaskManager
from canvasgen.services.video_gen import VideoGenerationService
from canvasgen.services.workspace_store import InMemoryWorkspaceStore, WorkspaceStore

logger = logging.getLogger(__name__)


@dataclass
class GenerationServices:
    settings: Settings
    image_registry: ProviderRegistry[ImageGenerationProvider]
    video_registry: ProviderRegistry[VideoGenerationProvider]
    image_service: ImageGenerationService
    video_service: VideoGenerationService
    workspace: WorkspaceStore
    task_manager: TaskManager

    async def aclose(self) -> None:
        await self.task_manager.shutdown()


def build_services(
    settings: Settings | None = None,
    *,
    backend: ExecutionBackend | None = None,
    workspace: WorkspaceStore | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> GenerationServices:
    settings = settings or get_settings()
    resolver = ProviderConfigResolver.from_settings(settings)

    direct_client = GeminiDirectClient(http_client, timeout=settings.GEMINI_DIRECT_TIMEOUT)
    image_registry = build_image_registry(backend, direct_client)
    video_registry = build_video_registry(backend)

    image_service = ImageGenerationService(image_registry, resolver)
    video_service = VideoGenerationService(
        video_registry,
        resolver,
        poll_max_attempts=settings.VIDEO_POLL_MAX_ATTEMPTS,
        poll_interval=settings.VIDEO_POLL_INTERVAL,
    )
    workspace = workspace if workspace is not None else InMemoryWorkspaceStore()
    task_manager = TaskManager(video_service, workspace)

    if backend is None:
        logger.warning("No execution backend configured; only the direct Gemini path can reach the network")

    return GenerationServices(
        settings=settings,
        image_registry=image_registry,
        video_registry=video_registry,
        image_service=image_service,
        video_service=video_service,
        workspace=workspace,
        task_manager=task_manager,
    )
