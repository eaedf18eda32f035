"""Kling video provider (``openai`` protocol, Kling REST endpoints).

Text-to-video or image-to-video; the mode is derived from whether a
first-frame image was supplied. Status and content lookups must carry the
same mode the task was created with.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar

from canvasgen.services.backend import (
    KLING_CREATE_TASK,
    KLING_DOWNLOAD_VIDEO,
    KLING_GET_CONTENT,
    KLING_GET_STATUS,
)
from canvasgen.services.cancellation import CancellationToken, is_cancelled
from canvasgen.services.errors import CANCELLED_MESSAGE, truncate_prompt
from canvasgen.services.image_data import normalize_image_input
from canvasgen.services.provider_config import ProviderConfig, ProviderProtocol
from canvasgen.services.providers.base import (
    BackendParams,
    TaskLookupParams,
    ValidationResult,
    VideoContentResponse,
    VideoGenerationProvider,
    VideoGenerationRequest,
    compact,
    normalize_base_url,
)

logger = logging.getLogger(__name__)


class KlingMode(str, enum.Enum):
    TEXT2VIDEO = "text2video"
    IMAGE2VIDEO = "image2video"


def mode_for(request: VideoGenerationRequest) -> KlingMode:
    return KlingMode.IMAGE2VIDEO if request.images else KlingMode.TEXT2VIDEO


def parse_size(size: str | None) -> tuple[int | None, int | None]:
    """``"1280x720"`` -> ``(1280, 720)``; anything unparsable -> ``(None, None)``."""
    if not size:
        return None, None
    width, sep, height = size.lower().partition("x")
    if not sep:
        return None, None
    try:
        return int(width), int(height)
    except ValueError:
        return None, None


@dataclass
class KlingCreateParams(BackendParams):
    command: ClassVar[str] = KLING_CREATE_TASK

    base_url: str
    api_key: str
    model: str
    prompt: str
    mode: KlingMode
    image: str | None = None
    duration: int | None = None
    width: int | None = None
    height: int | None = None
    fps: int | None = None
    seed: int | None = None
    n: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return compact({
            "baseUrl": self.base_url,
            "apiKey": self.api_key,
            "model": self.model,
            "prompt": self.prompt,
            "mode": self.mode.value,
            "image": self.image,
            "duration": self.duration,
            "width": self.width,
            "height": self.height,
            "fps": self.fps,
            "seed": self.seed,
            "n": self.n,
            "metadata": self.metadata,
        })


@dataclass
class KlingLookupParams(TaskLookupParams):
    mode: KlingMode = KlingMode.TEXT2VIDEO

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["mode"] = self.mode.value
        return payload


@dataclass
class KlingDownloadParams(BackendParams):
    command: ClassVar[str] = KLING_DOWNLOAD_VIDEO

    video_url: str

    def to_payload(self) -> dict[str, Any]:
        return {"videoUrl": self.video_url}


class KlingVideoProvider(VideoGenerationProvider):
    id = "kling"
    name = "Kling"
    protocol = ProviderProtocol.OPENAI.value

    supported_sizes = ("1280x720", "720x1280", "1920x1080", "1080x1920", "1024x1024")
    supported_durations = (5, 10)
    max_input_images = 1

    status_command = KLING_GET_STATUS
    content_command = KLING_GET_CONTENT

    def validate_request(self, request: VideoGenerationRequest) -> ValidationResult:
        result = super().validate_request(request)
        if not result.valid:
            return result
        if mode_for(request) is KlingMode.IMAGE2VIDEO and not request.images[0]:
            return ValidationResult.fail("Image-to-video mode requires an input image")
        return ValidationResult.ok()

    def build_backend_params(self, request: VideoGenerationRequest, config: ProviderConfig) -> KlingCreateParams:
        width, height = parse_size(request.size)
        meta = request.metadata
        return KlingCreateParams(
            base_url=normalize_base_url(config.base_url),
            api_key=config.api_key,
            model=request.model,
            prompt=request.prompt,
            mode=mode_for(request),
            image=normalize_image_input(request.images[0]).base64 if request.images else None,
            duration=request.duration,
            width=width,
            height=height,
            fps=meta.fps,
            seed=meta.seed,
            n=meta.count,
            metadata=compact({
                "negative_prompt": meta.negative_prompt,
                "style": meta.style,
                "quality_level": meta.quality_level,
            }),
        )

    def request_url(self, request: VideoGenerationRequest, config: ProviderConfig) -> str:
        return f"{normalize_base_url(config.base_url)}/kling/v1/videos/{mode_for(request).value}"

    def request_summary(self, request: VideoGenerationRequest) -> dict[str, Any]:
        return {
            "model": request.model,
            "prompt": truncate_prompt(request.prompt),
            "mode": mode_for(request).value,
            "duration": request.duration,
            "size": request.size,
            "hasImage": bool(request.images),
        }

    def task_options(self, request: VideoGenerationRequest) -> dict[str, Any]:
        return {"mode": mode_for(request)}

    def lookup_params(
        self,
        task_id: str,
        config: ProviderConfig,
        mode: KlingMode | str = KlingMode.TEXT2VIDEO,
        **options: Any,
    ) -> KlingLookupParams:
        return self._kling_lookup(self.status_command, task_id, config, mode)

    def content_params(
        self,
        task_id: str,
        config: ProviderConfig,
        mode: KlingMode | str = KlingMode.TEXT2VIDEO,
        **options: Any,
    ) -> KlingLookupParams:
        return self._kling_lookup(self.content_command, task_id, config, mode)

    @staticmethod
    def _kling_lookup(command: str, task_id: str, config: ProviderConfig, mode: KlingMode | str) -> KlingLookupParams:
        return KlingLookupParams(
            command=command,
            base_url=normalize_base_url(config.base_url),
            api_key=config.api_key,
            task_id=task_id,
            mode=KlingMode(mode),
        )

    async def get_video_content(
        self,
        task_id: str,
        config: ProviderConfig,
        token: CancellationToken | None = None,
        **options: Any,
    ) -> VideoContentResponse:
        """Fetch the finished video; when only a URL comes back, download it."""
        if is_cancelled(token):
            return VideoContentResponse(error=CANCELLED_MESSAGE)
        try:
            params = self.content_params(task_id, config, **options)
            result = await self._invoke(params.command, params.to_payload())
            if is_cancelled(token):
                return VideoContentResponse(error=CANCELLED_MESSAGE)
            if not result.success:
                return VideoContentResponse(error=result.error or "Failed to fetch video")

            video_url = result.get("videoUrl")
            video_data = result.get("videoData")
            if video_data:
                return VideoContentResponse(video_data=video_data, video_url=video_url)
            if not video_url:
                return self._empty_content(task_id, config, {"success": result.success, "hasVideoData": False})

            logger.info("kling: downloading video for %s", task_id)
            download = KlingDownloadParams(video_url=video_url)
            downloaded = await self._invoke(download.command, download.to_payload())
        except Exception as exc:
            if is_cancelled(token):
                return VideoContentResponse(error=CANCELLED_MESSAGE)
            logger.warning("kling content fetch failed for %s: %s", task_id, exc)
            return VideoContentResponse(error=str(exc) or "Failed to fetch video content")

        if is_cancelled(token):
            return VideoContentResponse(error=CANCELLED_MESSAGE)
        if not downloaded.success or not downloaded.get("videoData"):
            return VideoContentResponse(video_url=video_url, error=downloaded.error or "Failed to download video")
        return VideoContentResponse(video_data=downloaded.get("videoData"), video_url=video_url)
