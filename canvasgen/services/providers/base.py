"""Provider contract shared by every image and video provider.

A provider translates the generic request into one wire protocol's shape,
validates that protocol's limits locally, hands the built parameters to the
execution backend and maps the backend's envelope back into the generic
response. Each provider is a stateless singleton apart from the backend it
was constructed with.
"""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar

from canvasgen.services.backend import BackendResult, ExecutionBackend
from canvasgen.services.cancellation import CancellationToken, is_cancelled
from canvasgen.services.errors import (
    CANCELLED_MESSAGE,
    EMPTY_IMAGE_MESSAGE,
    EMPTY_VIDEO_MESSAGE,
    ErrorDetails,
    build_error_details,
    truncate_prompt,
)
from canvasgen.services.provider_config import ProviderConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ImageCapability(str, enum.Enum):
    TEXT_TO_IMAGE = "text-to-image"
    IMAGE_EDITING = "image-editing"


class VideoCapability(str, enum.Enum):
    TEXT_TO_VIDEO = "text-to-video"
    IMAGE_TO_VIDEO = "image-to-video"


class TaskStage(str, enum.Enum):
    """Provider-reported phase of a video task."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStage.COMPLETED, TaskStage.FAILED)


_STAGE_ALIASES: dict[str, TaskStage] = {
    "queued": TaskStage.QUEUED,
    "pending": TaskStage.QUEUED,
    "submitted": TaskStage.QUEUED,
    "created": TaskStage.QUEUED,
    "in_progress": TaskStage.IN_PROGRESS,
    "processing": TaskStage.IN_PROGRESS,
    "running": TaskStage.IN_PROGRESS,
    "generating": TaskStage.IN_PROGRESS,
    "completed": TaskStage.COMPLETED,
    "succeeded": TaskStage.COMPLETED,
    "succeed": TaskStage.COMPLETED,
    "success": TaskStage.COMPLETED,
    "done": TaskStage.COMPLETED,
    "failed": TaskStage.FAILED,
    "failure": TaskStage.FAILED,
    "error": TaskStage.FAILED,
    "cancelled": TaskStage.FAILED,
}


def normalize_stage(raw: str | None) -> TaskStage:
    """Map a backend status string onto the four-state stage enum."""
    if not raw:
        return TaskStage.QUEUED
    stage = _STAGE_ALIASES.get(raw.strip().lower())
    if stage is None:
        logger.warning("Unknown task status from backend: %s", raw)
        return TaskStage.IN_PROGRESS
    return stage


def clamp_progress(value: Any) -> int:
    try:
        progress = int(float(value))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, progress))


# ---------------------------------------------------------------------------
# Request / response types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: str | None = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(True)

    @classmethod
    def fail(cls, error: str) -> "ValidationResult":
        return cls(False, error)


@dataclass
class ImageGenerationRequest:
    prompt: str
    model: str
    input_images: list[str] = field(default_factory=list)
    aspect_ratio: str | None = None
    image_size: str | None = None
    negative_prompt: str | None = None


@dataclass
class ImageGenerationResponse:
    image_data: str | None = None
    text: str | None = None
    error: str | None = None
    error_details: ErrorDetails | None = None
    cancelled: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None and self.image_data is not None

    @classmethod
    def failure(cls, error: str, details: ErrorDetails | None = None, **extra: Any) -> "ImageGenerationResponse":
        return cls(error=error, error_details=details, **extra)

    @classmethod
    def cancelled_result(cls) -> "ImageGenerationResponse":
        return cls(error=CANCELLED_MESSAGE, cancelled=True)


@dataclass
class ReferenceImage:
    """Asset reference image for providers that accept style/subject references."""

    data: str
    mime_type: str | None = None


@dataclass
class VideoMetadata:
    negative_prompt: str | None = None
    style: str | None = None
    quality_level: str | None = None
    person_generation: str | None = None
    reference_images: list[ReferenceImage] = field(default_factory=list)
    seed: int | None = None
    fps: int | None = None
    count: int | None = None


@dataclass
class VideoGenerationRequest:
    """Generic video request.

    ``images``: one image means image-to-video, two images mean first/last
    frame interpolation where the provider allows it.
    """

    prompt: str
    model: str
    images: list[str] = field(default_factory=list)
    duration: int | None = None
    size: str | None = None
    aspect_ratio: str | None = None
    metadata: VideoMetadata = field(default_factory=VideoMetadata)


@dataclass
class VideoTaskResponse:
    task_id: str | None = None
    status: TaskStage | None = None
    progress: int = 0
    error: str | None = None
    error_details: ErrorDetails | None = None
    cancelled: bool = False

    @classmethod
    def failure(cls, error: str, details: ErrorDetails | None = None) -> "VideoTaskResponse":
        return cls(error=error, error_details=details)

    @classmethod
    def cancelled_result(cls) -> "VideoTaskResponse":
        return cls(error=CANCELLED_MESSAGE, cancelled=True)


@dataclass
class VideoContentResponse:
    video_data: str | None = None
    video_url: str | None = None
    error: str | None = None
    error_details: ErrorDetails | None = None


@dataclass
class VideoGenerationResponse:
    task_id: str | None = None
    status: TaskStage | None = None
    progress: int = 0
    video_data: str | None = None
    video_url: str | None = None
    error: str | None = None
    error_details: ErrorDetails | None = None
    cancelled: bool = False
    timed_out: bool = False

    @classmethod
    def cancelled_result(cls) -> "VideoGenerationResponse":
        return cls(error=CANCELLED_MESSAGE, cancelled=True)


@dataclass(frozen=True)
class VideoProgressInfo:
    progress: int
    stage: TaskStage
    task_id: str


# ---------------------------------------------------------------------------
# Backend parameter base (tagged by backend verb)
# ---------------------------------------------------------------------------

def compact(values: dict[str, Any]) -> dict[str, Any]:
    """Drop keys whose value is None or an empty container."""
    return {k: v for k, v in values.items() if v is not None and v != [] and v != {}}


def normalize_base_url(base_url: str) -> str:
    return base_url.rstrip("/")


class BackendParams:
    """Fully built parameters for one backend verb (``command``)."""

    command: str

    def to_payload(self) -> dict[str, Any]:
        raise NotImplementedError


@dataclass
class TaskLookupParams(BackendParams):
    """Status / content lookup for an existing task."""

    command: str
    base_url: str
    api_key: str
    task_id: str

    def to_payload(self) -> dict[str, Any]:
        return {"baseUrl": self.base_url, "apiKey": self.api_key, "taskId": self.task_id}


# ---------------------------------------------------------------------------
# Shared provider plumbing
# ---------------------------------------------------------------------------

class _BackendProvider:
    id: ClassVar[str]
    name: ClassVar[str]
    protocol: ClassVar[str]

    def __init__(self, backend: ExecutionBackend | None = None) -> None:
        self.backend = backend

    async def _invoke(self, command: str, payload: dict[str, Any]) -> BackendResult:
        if self.backend is None:
            raise RuntimeError(f"{self.name}: no execution backend available")
        return await self.backend.invoke(command, payload)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} protocol={self.protocol}>"


class ImageGenerationProvider(_BackendProvider, ABC):
    """Contract for single round-trip image providers."""

    capabilities: ClassVar[tuple[ImageCapability, ...]] = (
        ImageCapability.TEXT_TO_IMAGE,
        ImageCapability.IMAGE_EDITING,
    )
    supported_aspect_ratios: ClassVar[tuple[str, ...]] = ()
    supported_image_sizes: ClassVar[tuple[str, ...]] = ()
    max_input_images: ClassVar[int] = 1

    @property
    def supports_multiple_input_images(self) -> bool:
        return self.max_input_images > 1

    def validate_request(self, request: ImageGenerationRequest) -> ValidationResult:
        if not request.prompt or not request.prompt.strip():
            return ValidationResult.fail("Prompt must not be empty")
        if (
            request.aspect_ratio
            and self.supported_aspect_ratios
            and request.aspect_ratio not in self.supported_aspect_ratios
        ):
            return ValidationResult.fail(f"Unsupported aspect ratio: {request.aspect_ratio}")
        if (
            request.image_size
            and self.supported_image_sizes
            and request.image_size not in self.supported_image_sizes
        ):
            return ValidationResult.fail(f"Unsupported resolution: {request.image_size}")
        if len(request.input_images) > self.max_input_images:
            return ValidationResult.fail(
                f"{self.name} accepts at most {self.max_input_images} input image(s)"
            )
        return ValidationResult.ok()

    @abstractmethod
    def build_backend_params(self, request: ImageGenerationRequest, config: ProviderConfig) -> BackendParams:
        ...

    @abstractmethod
    def request_url(self, request: ImageGenerationRequest, config: ProviderConfig) -> str:
        """Fully reconstructed upstream URL, for diagnostics only."""

    def request_summary(self, request: ImageGenerationRequest) -> dict[str, Any]:
        return {
            "model": request.model,
            "prompt": truncate_prompt(request.prompt),
            "aspectRatio": request.aspect_ratio,
            "imageSize": request.image_size,
            "inputImagesCount": len(request.input_images),
        }

    async def generate(
        self,
        request: ImageGenerationRequest,
        config: ProviderConfig,
        token: CancellationToken | None = None,
    ) -> ImageGenerationResponse:
        validation = self.validate_request(request)
        if not validation.valid:
            return ImageGenerationResponse.failure(validation.error or "Invalid request")

        if is_cancelled(token):
            return ImageGenerationResponse.cancelled_result()

        try:
            response = await self._dispatch(request, config, token)
        except Exception as exc:
            if is_cancelled(token):
                return ImageGenerationResponse.cancelled_result()
            logger.warning("%s generation failed: %s", self.id, exc)
            return ImageGenerationResponse.failure(
                str(exc) or "Generation failed",
                self._error_details(exc, request, config),
            )

        if is_cancelled(token):
            return ImageGenerationResponse.cancelled_result()
        return response

    async def _dispatch(
        self,
        request: ImageGenerationRequest,
        config: ProviderConfig,
        token: CancellationToken | None,
    ) -> ImageGenerationResponse:
        params = self.build_backend_params(request, config)
        logger.info(
            "%s generating via backend (model=%s, input_images=%d)",
            self.id, request.model, len(request.input_images),
        )
        result = await self._invoke(params.command, params.to_payload())

        if is_cancelled(token):
            return ImageGenerationResponse.cancelled_result()

        if not result.success:
            message = result.error or "Request failed"
            logger.warning("%s backend error: %s", self.id, message)
            return ImageGenerationResponse.failure(
                message,
                self._error_details(
                    message, request, config,
                    status_code=result.status_code,
                    response_body=result.response_body,
                ),
            )
        return self.map_result(result, request, config)

    @abstractmethod
    def map_result(
        self,
        result: BackendResult,
        request: ImageGenerationRequest,
        config: ProviderConfig,
    ) -> ImageGenerationResponse:
        ...

    def _error_details(
        self,
        error: BaseException | str,
        request: ImageGenerationRequest,
        config: ProviderConfig,
        **extra: Any,
    ) -> ErrorDetails:
        return build_error_details(
            error,
            model=request.model,
            provider=config.name,
            request_url=self.request_url(request, config),
            request_body=self.request_summary(request),
            **extra,
        )

    def _empty_result(
        self,
        request: ImageGenerationRequest,
        config: ProviderConfig,
        response_body: dict[str, Any],
        text: str | None = None,
    ) -> ImageGenerationResponse:
        return ImageGenerationResponse.failure(
            EMPTY_IMAGE_MESSAGE,
            self._error_details(
                EMPTY_IMAGE_MESSAGE, request, config,
                name="EmptyImageData",
                response_body=response_body,
            ),
            text=text,
        )

    def describe(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "protocol": self.protocol,
            "capabilities": [c.value for c in self.capabilities],
            "supportedAspectRatios": list(self.supported_aspect_ratios),
            "supportedImageSizes": list(self.supported_image_sizes),
            "supportsMultipleInputImages": self.supports_multiple_input_images,
            "maxInputImages": self.max_input_images,
        }


class VideoGenerationProvider(_BackendProvider, ABC):
    """Contract for long-running (create -> poll -> fetch) video providers."""

    capabilities: ClassVar[tuple[VideoCapability, ...]] = (
        VideoCapability.TEXT_TO_VIDEO,
        VideoCapability.IMAGE_TO_VIDEO,
    )
    supported_sizes: ClassVar[tuple[str, ...]] = ()
    supported_aspect_ratios: ClassVar[tuple[str, ...]] = ()
    supported_durations: ClassVar[tuple[int, ...]] = ()
    max_input_images: ClassVar[int] = 1

    status_command: ClassVar[str]
    content_command: ClassVar[str]

    @property
    def supports_input_image(self) -> bool:
        return self.max_input_images > 0

    def validate_request(self, request: VideoGenerationRequest) -> ValidationResult:
        if not request.prompt or not request.prompt.strip():
            return ValidationResult.fail("Prompt must not be empty")
        if not request.model:
            return ValidationResult.fail("Model must be selected")
        if request.size and self.supported_sizes and request.size not in self.supported_sizes:
            return ValidationResult.fail(f"Unsupported video size: {request.size}")
        if (
            request.aspect_ratio
            and self.supported_aspect_ratios
            and request.aspect_ratio not in self.supported_aspect_ratios
        ):
            return ValidationResult.fail(f"Unsupported aspect ratio: {request.aspect_ratio}")
        if (
            request.duration is not None
            and self.supported_durations
            and request.duration not in self.supported_durations
        ):
            return ValidationResult.fail(f"Unsupported video duration: {request.duration}")
        if len(request.images) > self.max_input_images:
            return ValidationResult.fail(
                f"{self.name} accepts at most {self.max_input_images} input image(s)"
            )
        return ValidationResult.ok()

    @abstractmethod
    def build_backend_params(self, request: VideoGenerationRequest, config: ProviderConfig) -> BackendParams:
        ...

    @abstractmethod
    def request_url(self, request: VideoGenerationRequest, config: ProviderConfig) -> str:
        ...

    def request_summary(self, request: VideoGenerationRequest) -> dict[str, Any]:
        return {
            "model": request.model,
            "prompt": truncate_prompt(request.prompt),
            "duration": request.duration,
            "size": request.size,
            "aspectRatio": request.aspect_ratio,
            "imagesCount": len(request.images),
        }

    def task_options(self, request: VideoGenerationRequest) -> dict[str, Any]:
        """Extra keyword options status/content lookups need for tasks built from ``request``."""
        return {}

    def lookup_params(self, task_id: str, config: ProviderConfig, **options: Any) -> BackendParams:
        return _lookup(self.status_command, task_id, config)

    def content_params(self, task_id: str, config: ProviderConfig, **options: Any) -> BackendParams:
        return _lookup(self.content_command, task_id, config)

    async def create_task(
        self,
        request: VideoGenerationRequest,
        config: ProviderConfig,
        token: CancellationToken | None = None,
    ) -> VideoTaskResponse:
        validation = self.validate_request(request)
        if not validation.valid:
            return VideoTaskResponse.failure(validation.error or "Invalid request")

        if is_cancelled(token):
            return VideoTaskResponse.cancelled_result()

        try:
            params = self.build_backend_params(request, config)
            logger.info("%s creating video task (model=%s)", self.id, request.model)

            if is_cancelled(token):
                return VideoTaskResponse.cancelled_result()

            result = await self._invoke(params.command, params.to_payload())
        except Exception as exc:
            if is_cancelled(token):
                return VideoTaskResponse.cancelled_result()
            logger.warning("%s task creation failed: %s", self.id, exc)
            return VideoTaskResponse.failure(
                str(exc) or "Failed to create video task",
                self._error_details(exc, request, config),
            )

        if is_cancelled(token):
            logger.info(
                "%s task created but cancelled by caller, task_id=%s",
                self.id, result.get("taskId"),
            )
            return VideoTaskResponse.cancelled_result()

        if not result.success:
            message = result.error or "Failed to create task"
            logger.warning("%s backend error on create: %s", self.id, message)
            return VideoTaskResponse.failure(
                message,
                self._error_details(
                    message, request, config,
                    status_code=result.status_code,
                    response_body=result.response_body,
                ),
            )

        task_id = result.get("taskId")
        if not task_id:
            message = "API reported success but returned no task id"
            return VideoTaskResponse.failure(
                message,
                self._error_details(
                    message, request, config,
                    name="EmptyTaskId",
                    response_body=dict(result.payload),
                ),
            )

        return VideoTaskResponse(
            task_id=task_id,
            status=normalize_stage(result.get("status")),
            progress=clamp_progress(result.get("progress")),
        )

    async def get_task_status(
        self,
        task_id: str,
        config: ProviderConfig,
        token: CancellationToken | None = None,
        **options: Any,
    ) -> VideoTaskResponse:
        if is_cancelled(token):
            return VideoTaskResponse.cancelled_result()
        try:
            params = self.lookup_params(task_id, config, **options)
            result = await self._invoke(params.command, params.to_payload())
        except Exception as exc:
            if is_cancelled(token):
                return VideoTaskResponse.cancelled_result()
            logger.warning("%s status query failed for %s: %s", self.id, task_id, exc)
            return VideoTaskResponse.failure(str(exc) or "Failed to query task status")

        if is_cancelled(token):
            return VideoTaskResponse.cancelled_result()

        if not result.success:
            return VideoTaskResponse.failure(result.error or "Failed to query task status")

        return VideoTaskResponse(
            task_id=result.get("taskId") or task_id,
            status=normalize_stage(result.get("status")),
            progress=clamp_progress(result.get("progress")),
            error=result.error,
        )

    async def get_video_content(
        self,
        task_id: str,
        config: ProviderConfig,
        token: CancellationToken | None = None,
        **options: Any,
    ) -> VideoContentResponse:
        if is_cancelled(token):
            return VideoContentResponse(error=CANCELLED_MESSAGE)
        try:
            params = self.content_params(task_id, config, **options)
            logger.info("%s fetching video content for %s", self.id, task_id)
            result = await self._invoke(params.command, params.to_payload())
        except Exception as exc:
            if is_cancelled(token):
                return VideoContentResponse(error=CANCELLED_MESSAGE)
            logger.warning("%s content fetch failed for %s: %s", self.id, task_id, exc)
            return VideoContentResponse(error=str(exc) or "Failed to fetch video content")

        if is_cancelled(token):
            return VideoContentResponse(error=CANCELLED_MESSAGE)

        if not result.success:
            return VideoContentResponse(error=result.error or "Failed to fetch video")
        video_data = result.get("videoData")
        if not video_data:
            return self._empty_content(task_id, config, {
                "success": result.success,
                "videoUrl": result.get("videoUrl"),
                "hasVideoData": False,
            })
        return VideoContentResponse(video_data=video_data, video_url=result.get("videoUrl"))

    def _empty_content(
        self,
        task_id: str,
        config: ProviderConfig,
        response_body: dict[str, Any],
    ) -> VideoContentResponse:
        logger.warning("%s returned no video data for %s", self.id, task_id)
        return VideoContentResponse(
            video_url=response_body.get("videoUrl"),
            error=EMPTY_VIDEO_MESSAGE,
            error_details=build_error_details(
                EMPTY_VIDEO_MESSAGE,
                provider=config.name,
                name="EmptyVideoData",
                response_body=response_body,
            ),
        )

    def _error_details(
        self,
        error: BaseException | str,
        request: VideoGenerationRequest,
        config: ProviderConfig,
        **extra: Any,
    ) -> ErrorDetails:
        return build_error_details(
            error,
            model=request.model,
            provider=config.name,
            request_url=self.request_url(request, config),
            request_body=self.request_summary(request),
            **extra,
        )

    def describe(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "protocol": self.protocol,
            "capabilities": [c.value for c in self.capabilities],
            "supportedSizes": list(self.supported_sizes),
            "supportedAspectRatios": list(self.supported_aspect_ratios),
            "supportedDurations": list(self.supported_durations),
            "supportsInputImage": self.supports_input_image,
            "maxInputImages": self.max_input_images,
        }


def _lookup(command: str, task_id: str, config: ProviderConfig) -> TaskLookupParams:
    return TaskLookupParams(
        command=command,
        base_url=normalize_base_url(config.base_url),
        api_key=config.api_key,
        task_id=task_id,
    )
