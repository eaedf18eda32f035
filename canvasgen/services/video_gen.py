"""Video generation service: create a task, poll it, fetch the result.

Flow:
1. ``create_video_task``   -> provider validates and submits, returns task id
2. ``poll_video_task``     -> query status every ``interval`` seconds until a
   terminal stage, cancellation or the attempt ceiling
3. ``get_video_content``   -> fetch the finished video (base64)

``generate_video`` runs all three in sequence.
"""

from __future__ import annotations

import base64
import binascii
import logging
from pathlib import Path
from typing import Any, Callable

from canvasgen.services.cancellation import CancellationToken, cancellable_sleep, is_cancelled
from canvasgen.services.errors import (
    CANCELLED_MESSAGE,
    TASK_TIMEOUT_MESSAGE,
    GenerationError,
    ProviderConfigError,
)
from canvasgen.services.provider_config import (
    KLING_GENERATOR,
    VEO_GENERATOR,
    VIDEO_GENERATOR,
    ProviderConfig,
    ProviderConfigResolver,
)
from canvasgen.services.providers.base import (
    TaskStage,
    VideoContentResponse,
    VideoGenerationProvider,
    VideoGenerationRequest,
    VideoGenerationResponse,
    VideoProgressInfo,
    VideoTaskResponse,
)
from canvasgen.services.registry import ProviderRegistry

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[VideoProgressInfo], None]

# Node types bound to one concrete provider regardless of protocol.
NODE_TYPE_PROVIDER_IDS = {
    KLING_GENERATOR: "kling",
    VEO_GENERATOR: "veo",
}

DEFAULT_POLL_MAX_ATTEMPTS = 120
DEFAULT_POLL_INTERVAL = 5.0


class VideoGenerationService:
    def __init__(
        self,
        registry: ProviderRegistry[VideoGenerationProvider],
        resolver: ProviderConfigResolver,
        *,
        poll_max_attempts: int = DEFAULT_POLL_MAX_ATTEMPTS,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.registry = registry
        self.resolver = resolver
        self.poll_max_attempts = poll_max_attempts
        self.poll_interval = poll_interval

    def resolve(self, node_type: str) -> tuple[VideoGenerationProvider, ProviderConfig]:
        """Return the provider and credentials for ``node_type``.

        Raises ProviderConfigError when nothing usable is configured.
        """
        config = self.resolver.resolve(node_type)
        provider_id = NODE_TYPE_PROVIDER_IDS.get(node_type)
        if provider_id is not None:
            provider = self.registry.get(provider_id)
        else:
            provider = self.registry.get_by_protocol(config.protocol)
        if provider is None:
            raise ProviderConfigError(
                f"Unsupported protocol '{config.protocol}', please check the provider configuration"
            )
        return provider, config

    # ------------------------------------------------------------------
    # Single phases
    # ------------------------------------------------------------------

    async def create_video_task(
        self,
        request: VideoGenerationRequest,
        node_type: str = VIDEO_GENERATOR,
        token: CancellationToken | None = None,
    ) -> VideoTaskResponse:
        try:
            provider, config = self.resolve(node_type)
        except ProviderConfigError as exc:
            return VideoTaskResponse.failure(str(exc))

        logger.info("video_gen: %s via provider=%s model=%s", node_type, provider.id, request.model)
        return await provider.create_task(request, config, token)

    async def get_video_task_status(
        self,
        task_id: str,
        node_type: str = VIDEO_GENERATOR,
        token: CancellationToken | None = None,
        **options: Any,
    ) -> VideoTaskResponse:
        try:
            provider, config = self.resolve(node_type)
        except ProviderConfigError as exc:
            return VideoTaskResponse.failure(str(exc))
        return await provider.get_task_status(task_id, config, token, **options)

    async def get_video_content(
        self,
        task_id: str,
        node_type: str = VIDEO_GENERATOR,
        token: CancellationToken | None = None,
        **options: Any,
    ) -> VideoContentResponse:
        try:
            provider, config = self.resolve(node_type)
        except ProviderConfigError as exc:
            return VideoContentResponse(error=str(exc))
        return await provider.get_video_content(task_id, config, token, **options)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def poll_video_task(
        self,
        task_id: str,
        on_progress: ProgressCallback | None = None,
        *,
        max_attempts: int | None = None,
        interval: float | None = None,
        token: CancellationToken | None = None,
        node_type: str = VIDEO_GENERATOR,
        **options: Any,
    ) -> VideoGenerationResponse:
        """Poll until the task completes, fails, is cancelled or runs out of attempts.

        ``interval`` is in seconds. The wait between polls ends early when
        ``token`` fires.
        """
        attempts = self.poll_max_attempts if max_attempts is None else max_attempts
        delay = self.poll_interval if interval is None else interval

        for attempt in range(attempts):
            if is_cancelled(token):
                return VideoGenerationResponse.cancelled_result()

            status = await self.get_video_task_status(task_id, node_type, token, **options)
            if status.error:
                if status.cancelled:
                    return VideoGenerationResponse.cancelled_result()
                return VideoGenerationResponse(
                    task_id=task_id,
                    status=status.status,
                    error=status.error,
                    error_details=status.error_details,
                )

            stage = status.status or TaskStage.QUEUED
            if on_progress is not None:
                on_progress(VideoProgressInfo(progress=status.progress, stage=stage, task_id=task_id))

            if stage is TaskStage.COMPLETED:
                return VideoGenerationResponse(task_id=task_id, status=TaskStage.COMPLETED, progress=100)
            if stage is TaskStage.FAILED:
                return VideoGenerationResponse(
                    task_id=task_id,
                    status=TaskStage.FAILED,
                    progress=status.progress,
                    error=status.error or "Video generation failed",
                )

            logger.debug("video_gen: task %s %s %d%% (attempt %d)", task_id, stage.value, status.progress, attempt + 1)
            await cancellable_sleep(delay, token)

        logger.warning("video_gen: task %s timed out after %d attempts", task_id, attempts)
        return VideoGenerationResponse(task_id=task_id, error=TASK_TIMEOUT_MESSAGE, timed_out=True)

    # ------------------------------------------------------------------
    # Composite flow
    # ------------------------------------------------------------------

    async def generate_video(
        self,
        request: VideoGenerationRequest,
        on_progress: ProgressCallback | None = None,
        node_type: str = VIDEO_GENERATOR,
        token: CancellationToken | None = None,
        *,
        fetch_content: bool = True,
    ) -> VideoGenerationResponse:
        created = await self.create_video_task(request, node_type, token)
        if created.error or not created.task_id:
            return VideoGenerationResponse(
                error=created.error or "Failed to create task",
                error_details=created.error_details,
                cancelled=created.cancelled,
            )

        task_id = created.task_id
        if on_progress is not None:
            on_progress(VideoProgressInfo(progress=0, stage=TaskStage.QUEUED, task_id=task_id))

        options = self._task_options(request, node_type)
        result = await self.poll_video_task(
            task_id, on_progress, token=token, node_type=node_type, **options
        )
        if result.error or not fetch_content:
            return result

        content = await self.get_video_content(task_id, node_type, token, **options)
        if content.error == CANCELLED_MESSAGE:
            return VideoGenerationResponse.cancelled_result()
        result.video_url = content.video_url
        if content.error:
            result.error = content.error
            result.error_details = content.error_details
        else:
            result.video_data = content.video_data
        return result

    async def download_video(
        self,
        task_id: str,
        destination: str | Path,
        node_type: str = VIDEO_GENERATOR,
        token: CancellationToken | None = None,
        **options: Any,
    ) -> Path:
        """Fetch a finished video and write it to ``destination``.

        Raises GenerationError when the content cannot be fetched or decoded.
        """
        content = await self.get_video_content(task_id, node_type, token, **options)
        if content.error or not content.video_data:
            raise GenerationError(content.error or "Failed to download video")
        try:
            data = base64.b64decode(content.video_data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise GenerationError(f"Video payload is not valid base64: {exc}") from exc

        path = Path(destination)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info("video_gen: saved task %s to %s (%d bytes)", task_id, path, len(data))
        return path

    def get_video_provider_capabilities(self, node_type: str) -> dict[str, Any] | None:
        try:
            provider, _ = self.resolve(node_type)
        except ProviderConfigError:
            return None
        return provider.describe()

    def _task_options(self, request: VideoGenerationRequest, node_type: str) -> dict[str, Any]:
        try:
            provider, _ = self.resolve(node_type)
        except ProviderConfigError:
            return {}
        return provider.task_options(request)
