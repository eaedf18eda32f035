"""Tests for backend parameter building and envelope mapping per provider."""

import pytest

from canvasgen.services.backend import (
    DALLE_GENERATE_IMAGE,
    GEMINI_GENERATE_CONTENT,
    KLING_CREATE_TASK,
    KLING_DOWNLOAD_VIDEO,
    KLING_GET_CONTENT,
    KLING_GET_STATUS,
    OPENAI_RESPONSES,
    VEO_CREATE_TASK,
    VIDEO_CREATE_TASK,
    VIDEO_GET_CONTENT,
    VIDEO_GET_STATUS,
)
from canvasgen.services.cancellation import CancellationToken
from canvasgen.services.errors import CANCELLED_MESSAGE, EMPTY_IMAGE_MESSAGE, EMPTY_VIDEO_MESSAGE
from canvasgen.services.providers.base import (
    ImageGenerationRequest,
    ReferenceImage,
    TaskStage,
    VideoGenerationRequest,
    VideoMetadata,
    normalize_stage,
)
from canvasgen.services.providers.flux_image import FluxImageProvider
from canvasgen.services.providers.gemini_image import GeminiImageProvider
from canvasgen.services.providers.kling_video import KlingMode, KlingVideoProvider, parse_size
from canvasgen.services.providers.openai_responses_image import OpenAIResponsesImageProvider
from canvasgen.services.providers.sora_video import SoraVideoProvider
from canvasgen.services.providers.veo_video import VeoVideoProvider
from tests.conftest import PNG_B64, VIDEO_B64, CancellingBackend, FakeBackend


# ---------------------------------------------------------------------------
# Stage mapping
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw,stage", [
    ("queued", TaskStage.QUEUED),
    ("PENDING", TaskStage.QUEUED),
    ("processing", TaskStage.IN_PROGRESS),
    ("succeed", TaskStage.COMPLETED),
    ("completed", TaskStage.COMPLETED),
    ("failure", TaskStage.FAILED),
    (None, TaskStage.QUEUED),
    ("warming-up", TaskStage.IN_PROGRESS),
])
def test_normalize_stage(raw, stage):
    assert normalize_stage(raw) is stage


# ---------------------------------------------------------------------------
# Gemini
# ---------------------------------------------------------------------------

def test_gemini_params_only_pro_model_sends_resolution(google_config):
    provider = GeminiImageProvider()
    pro = provider.build_backend_params(
        ImageGenerationRequest(prompt="p", model="gemini-3-pro-image-preview", image_size="2K"), google_config
    )
    flash = provider.build_backend_params(
        ImageGenerationRequest(prompt="p", model="gemini-2.5-flash-image", image_size="2K"), google_config
    )

    assert pro.command == GEMINI_GENERATE_CONTENT
    assert pro.to_payload()["imageSize"] == "2K"
    assert "imageSize" not in flash.to_payload()
    assert pro.to_payload()["baseUrl"] == "https://gemini.test/v1beta"
    assert pro.to_payload()["aspectRatio"] == "1:1"


def test_gemini_params_strip_data_uri(google_config):
    params = GeminiImageProvider().build_backend_params(
        ImageGenerationRequest(prompt="p", model="m", input_images=[f"data:image/jpeg;base64,{PNG_B64}"]),
        google_config,
    )
    assert params.to_payload()["inputImages"] == [PNG_B64]


@pytest.mark.asyncio
async def test_gemini_generate_success(google_config):
    backend = FakeBackend({GEMINI_GENERATE_CONTENT: {"success": True, "imageData": PNG_B64, "text": "done"}})

    response = await GeminiImageProvider(backend).generate(ImageGenerationRequest(prompt="p", model="m"), google_config)

    assert response.ok
    assert response.image_data == PNG_B64
    assert response.text == "done"


@pytest.mark.asyncio
async def test_gemini_salvages_image_from_text(google_config):
    backend = FakeBackend({
        GEMINI_GENERATE_CONTENT: {"success": True, "text": f"result: data:image/png;base64,{PNG_B64}"},
    })

    response = await GeminiImageProvider(backend).generate(ImageGenerationRequest(prompt="p", model="m"), google_config)

    assert response.image_data == PNG_B64


@pytest.mark.asyncio
async def test_gemini_empty_result_is_distinct_error(google_config):
    backend = FakeBackend({GEMINI_GENERATE_CONTENT: {"success": True, "text": "I can't"}})

    response = await GeminiImageProvider(backend).generate(ImageGenerationRequest(prompt="p", model="m"), google_config)

    assert response.image_data is None
    assert response.text == "I can't"
    assert response.error_details.name == "EmptyImageData"
    assert response.error_details.response_body["hasText"] is True


@pytest.mark.asyncio
async def test_gemini_backend_error_carries_diagnostics(google_config):
    backend = FakeBackend({
        GEMINI_GENERATE_CONTENT: {"success": False, "error": 'API error (429): {"error": "quota"}'},
    })

    response = await GeminiImageProvider(backend).generate(
        ImageGenerationRequest(prompt="x" * 2000, model="gemini-2.5-flash-image"), google_config
    )

    details = response.error_details
    assert response.error.startswith("API error (429)")
    assert details.status_code == 429
    assert details.response_body == {"error": "quota"}
    assert details.provider == "Google AI"
    assert details.request_url == "https://gemini.test/v1beta/models/gemini-2.5-flash-image:generateContent"
    assert len(str(details.request_body)) <= 500


@pytest.mark.asyncio
async def test_backend_exception_becomes_failure(google_config):
    backend = FakeBackend({GEMINI_GENERATE_CONTENT: RuntimeError("socket closed")})

    response = await GeminiImageProvider(backend).generate(ImageGenerationRequest(prompt="p", model="m"), google_config)

    assert response.error == "socket closed"
    assert response.error_details.name == "RuntimeError"


@pytest.mark.asyncio
async def test_cancelled_before_dispatch(google_config):
    backend = FakeBackend()
    token = CancellationToken()
    token.cancel()

    response = await GeminiImageProvider(backend).generate(
        ImageGenerationRequest(prompt="p", model="m"), google_config, token
    )

    assert response.cancelled
    assert backend.calls == []


# ---------------------------------------------------------------------------
# Flux
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_flux_empty_result_reports_body(relay_config):
    backend = FakeBackend({
        DALLE_GENERATE_IMAGE: {"success": True, "imageUrl": "https://cdn/x.png", "revisedPrompt": "a cat"},
    })

    response = await FluxImageProvider(backend).generate(
        ImageGenerationRequest(prompt="a cat", model="flux-pro", aspect_ratio="16:9"), relay_config
    )

    assert response.error_details.response_body == {
        "success": True,
        "imageUrl": "https://cdn/x.png",
        "revisedPrompt": "a cat",
        "hasImageData": False,
    }
    assert response.error_details.request_url == "https://relay.test/v1/images/generations"
    params = backend.params_for(DALLE_GENERATE_IMAGE)
    assert params["aspectRatio"] == "16:9"
    assert params["baseUrl"] == "https://relay.test"
    assert "inputImages" not in params


# ---------------------------------------------------------------------------
# OpenAI Responses
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_openai_responses_salvages_image_from_reply(relay_config):
    reply = f"Here you go: data:image/png;base64,{PNG_B64}"
    backend = FakeBackend({OPENAI_RESPONSES: {"success": True, "content": reply}})

    response = await OpenAIResponsesImageProvider(backend).generate(
        ImageGenerationRequest(prompt="a fox", model="gpt-image", input_images=[f"data:image/jpeg;base64,{PNG_B64}"]),
        relay_config,
    )

    assert response.image_data == PNG_B64
    assert response.text == reply
    params = backend.params_for(OPENAI_RESPONSES)
    assert params["baseUrl"] == "https://relay.test"
    assert params["files"] == [{"data": PNG_B64, "mimeType": "image/jpeg", "fileName": "input-1"}]


@pytest.mark.asyncio
async def test_openai_responses_text_only_reply_is_empty_result(relay_config):
    backend = FakeBackend({OPENAI_RESPONSES: {"success": True, "content": "I cannot draw that."}})

    response = await OpenAIResponsesImageProvider(backend).generate(
        ImageGenerationRequest(prompt="a fox", model="gpt-image"), relay_config
    )

    assert response.error == EMPTY_IMAGE_MESSAGE
    assert response.text == "I cannot draw that."
    assert response.error_details.name == "EmptyImageData"
    assert response.error_details.response_body == {"success": True, "hasContent": True}
    assert response.error_details.request_url == "https://relay.test/v1/responses"
    assert "files" not in backend.params_for(OPENAI_RESPONSES)


# ---------------------------------------------------------------------------
# Sora
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_sora_create_task(relay_config):
    backend = FakeBackend({VIDEO_CREATE_TASK: {"success": True, "taskId": "vid_1", "status": "queued"}})

    response = await SoraVideoProvider(backend).create_task(
        VideoGenerationRequest(prompt="p", model="sora-2", duration=10, size="720x1280", images=[PNG_B64]),
        relay_config,
    )

    assert response.task_id == "vid_1"
    assert response.status is TaskStage.QUEUED
    params = backend.params_for(VIDEO_CREATE_TASK)
    assert params["seconds"] == "10"
    assert params["inputImage"] == PNG_B64


@pytest.mark.asyncio
async def test_create_task_without_task_id(relay_config):
    backend = FakeBackend({VIDEO_CREATE_TASK: {"success": True}})

    response = await SoraVideoProvider(backend).create_task(VideoGenerationRequest(prompt="p", model="sora-2"), relay_config)

    assert response.task_id is None
    assert response.error_details.name == "EmptyTaskId"


@pytest.mark.asyncio
async def test_create_task_discards_result_after_cancel(relay_config):
    token = CancellationToken()

    class CancellingBackend(FakeBackend):
        async def invoke(self, command, params):
            result = await super().invoke(command, params)
            token.cancel()
            return result

    backend = CancellingBackend({VIDEO_CREATE_TASK: {"success": True, "taskId": "vid_1"}})

    response = await SoraVideoProvider(backend).create_task(
        VideoGenerationRequest(prompt="p", model="sora-2"), relay_config, token
    )

    assert response.cancelled
    assert response.task_id is None


@pytest.mark.asyncio
async def test_status_passes_progress_and_error(relay_config):
    backend = FakeBackend({
        VIDEO_GET_STATUS: {"success": True, "status": "in_progress", "progress": 140, "error": "slow"},
    })

    response = await SoraVideoProvider(backend).get_task_status("vid_1", relay_config)

    assert response.status is TaskStage.IN_PROGRESS
    assert response.progress == 100
    assert response.error == "slow"
    assert backend.params_for(VIDEO_GET_STATUS) == {"baseUrl": "https://relay.test", "apiKey": "r-key", "taskId": "vid_1"}


@pytest.mark.asyncio
async def test_content_before_completion_surfaces_backend_error(relay_config):
    backend = FakeBackend({VIDEO_GET_CONTENT: {"success": False, "error": "video not ready"}})

    response = await SoraVideoProvider(backend).get_video_content("vid_1", relay_config)

    assert response.error == "video not ready"


@pytest.mark.asyncio
async def test_content_without_video_data_is_empty_result(relay_config):
    backend = FakeBackend({VIDEO_GET_CONTENT: {"success": True}})

    response = await SoraVideoProvider(backend).get_video_content("vid_1", relay_config)

    assert response.error == EMPTY_VIDEO_MESSAGE
    assert response.error_details.name == "EmptyVideoData"
    assert response.error_details.provider == "Relay"
    assert response.error_details.response_body == {"success": True, "videoUrl": None, "hasVideoData": False}


@pytest.mark.asyncio
async def test_content_error_after_cancel_reports_cancelled(relay_config):
    token = CancellationToken()
    backend = CancellingBackend(token, VIDEO_GET_CONTENT, {VIDEO_GET_CONTENT: RuntimeError("connection reset")})

    response = await SoraVideoProvider(backend).get_video_content("vid_1", relay_config, token)

    assert response.error == CANCELLED_MESSAGE


# ---------------------------------------------------------------------------
# Kling
# ---------------------------------------------------------------------------

def test_parse_size():
    assert parse_size("1920x1080") == (1920, 1080)
    assert parse_size("16:9") == (None, None)
    assert parse_size(None) == (None, None)


def test_kling_params(relay_config):
    request = VideoGenerationRequest(
        prompt="p",
        model="kling-v1",
        images=[PNG_B64],
        duration=5,
        size="1280x720",
        metadata=VideoMetadata(negative_prompt="blur", quality_level="high", seed=7),
    )
    provider = KlingVideoProvider()
    payload = provider.build_backend_params(request, relay_config).to_payload()

    assert payload["mode"] == "image2video"
    assert (payload["width"], payload["height"]) == (1280, 720)
    assert payload["seed"] == 7
    assert payload["metadata"] == {"negative_prompt": "blur", "quality_level": "high"}
    assert provider.request_url(request, relay_config) == "https://relay.test/kling/v1/videos/image2video"
    assert provider.task_options(request) == {"mode": KlingMode.IMAGE2VIDEO}


@pytest.mark.asyncio
async def test_kling_status_carries_mode(relay_config):
    backend = FakeBackend({KLING_GET_STATUS: {"success": True, "status": "processing", "progress": 30}})

    await KlingVideoProvider(backend).get_task_status("k1", relay_config, mode="image2video")

    assert backend.params_for(KLING_GET_STATUS)["mode"] == "image2video"


@pytest.mark.asyncio
async def test_kling_content_downloads_url(relay_config):
    backend = FakeBackend({
        KLING_GET_CONTENT: {"success": True, "videoUrl": "https://cdn/k1.mp4"},
        KLING_DOWNLOAD_VIDEO: {"success": True, "videoData": VIDEO_B64},
    })

    response = await KlingVideoProvider(backend).get_video_content("k1", relay_config)

    assert response.video_data == VIDEO_B64
    assert response.video_url == "https://cdn/k1.mp4"
    assert backend.params_for(KLING_DOWNLOAD_VIDEO) == {"videoUrl": "https://cdn/k1.mp4"}
    assert backend.params_for(KLING_GET_CONTENT)["mode"] == "text2video"


@pytest.mark.asyncio
async def test_kling_create_task(relay_config):
    backend = FakeBackend({KLING_CREATE_TASK: {"success": True, "taskId": "k1", "status": "submitted"}})

    response = await KlingVideoProvider(backend).create_task(VideoGenerationRequest(prompt="p", model="kling-v1"), relay_config)

    assert response.task_id == "k1"
    assert backend.params_for(KLING_CREATE_TASK)["mode"] == "text2video"


@pytest.mark.asyncio
async def test_kling_download_error_after_cancel_reports_cancelled(relay_config):
    token = CancellationToken()
    backend = CancellingBackend(token, KLING_DOWNLOAD_VIDEO, {
        KLING_GET_CONTENT: {"success": True, "videoUrl": "https://cdn/k1.mp4"},
        KLING_DOWNLOAD_VIDEO: RuntimeError("connection reset"),
    })

    response = await KlingVideoProvider(backend).get_video_content("k1", relay_config, token)

    assert response.error == CANCELLED_MESSAGE


@pytest.mark.asyncio
async def test_kling_content_without_data_or_url_is_empty_result(relay_config):
    backend = FakeBackend({KLING_GET_CONTENT: {"success": True}})

    response = await KlingVideoProvider(backend).get_video_content("k1", relay_config)

    assert response.error == EMPTY_VIDEO_MESSAGE
    assert response.error_details.name == "EmptyVideoData"
    assert KLING_DOWNLOAD_VIDEO not in backend.commands()


# ---------------------------------------------------------------------------
# Veo
# ---------------------------------------------------------------------------

def test_veo_params_reference_images(relay_config):
    request = VideoGenerationRequest(
        prompt="p",
        model="veo-3.1-generate-preview",
        duration=8,
        aspect_ratio="16:9",
        metadata=VideoMetadata(
            person_generation="allow_adult",
            reference_images=[ReferenceImage(data=f"data:image/jpeg;base64,{PNG_B64}")],
        ),
    )
    params = VeoVideoProvider().build_backend_params(request, relay_config)

    assert params.command == VEO_CREATE_TASK
    payload = params.to_payload()
    assert "images" not in payload
    assert payload["metadata"] == {
        "aspectRatio": "16:9",
        "durationSeconds": 8,
        "personGeneration": "allow_adult",
        "referenceImages": [
            {"image": {"bytesBase64Encoded": PNG_B64, "mimeType": "image/jpeg"}, "referenceType": "asset"},
        ],
    }


def test_veo_params_frame_interpolation(relay_config):
    request = VideoGenerationRequest(prompt="p", model="veo-3.1", images=[PNG_B64, PNG_B64], duration=8)
    payload = VeoVideoProvider().build_backend_params(request, relay_config).to_payload()

    assert payload["images"] == [PNG_B64, PNG_B64]
    assert payload["metadata"] == {"durationSeconds": 8}
    assert VeoVideoProvider().request_url(request, relay_config) == "https://relay.test/v1/videos"
