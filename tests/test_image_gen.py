"""Tests for ImageGenerationService."""

import pytest

from canvasgen.config import ProviderEntry
from canvasgen.services.backend import DALLE_GENERATE_IMAGE, GEMINI_GENERATE_CONTENT, OPENAI_RESPONSES
from canvasgen.services.cancellation import CancellationToken
from canvasgen.services.image_gen import ImageGenerationService
from canvasgen.services.provider_config import ProviderConfigResolver
from canvasgen.services.providers.base import ImageGenerationRequest
from canvasgen.services.registry import build_image_registry
from tests.conftest import PNG_B64, FakeBackend


@pytest.fixture
def service_factory(resolver):
    def _make(backend):
        return ImageGenerationService(build_image_registry(backend), resolver)
    return _make


@pytest.mark.asyncio
async def test_generate_uses_provider_for_node_protocol(service_factory):
    backend = FakeBackend({GEMINI_GENERATE_CONTENT: {"success": True, "imageData": PNG_B64}})

    response = await service_factory(backend).generate_image(
        ImageGenerationRequest(prompt="a fox", model="gemini-3-pro-image-preview"), "imageGeneratorPro"
    )

    assert response.image_data == PNG_B64
    assert backend.commands() == [GEMINI_GENERATE_CONTENT]
    assert backend.params_for(GEMINI_GENERATE_CONTENT)["apiKey"] == "g-key"


@pytest.mark.asyncio
async def test_fast_node_routes_to_openai_protocol(service_factory):
    backend = FakeBackend({DALLE_GENERATE_IMAGE: {"success": True, "imageData": PNG_B64}})

    response = await service_factory(backend).generate_image(
        ImageGenerationRequest(prompt="a fox", model="flux-schnell"), "imageGeneratorFast"
    )

    assert response.ok
    assert backend.commands() == [DALLE_GENERATE_IMAGE]


@pytest.mark.asyncio
async def test_openai_responses_node_edits_through_responses_api():
    backend = FakeBackend({OPENAI_RESPONSES: {"success": True, "content": f"data:image/png;base64,{PNG_B64}"}})
    resolver = ProviderConfigResolver(
        [ProviderEntry(id="oa", name="OpenAI", protocol="openaiResponses", api_key="o-key", base_url="https://api.test")],
        {"imageGeneratorFast": "oa"},
    )
    service = ImageGenerationService(build_image_registry(backend), resolver)

    response = await service.edit_image(
        ImageGenerationRequest(prompt="make it blue", model="gpt-image", input_images=[PNG_B64]),
        "imageGeneratorFast",
    )

    assert response.image_data == PNG_B64
    assert backend.commands() == [OPENAI_RESPONSES]
    assert backend.params_for(OPENAI_RESPONSES)["files"][0]["fileName"] == "input-1"


@pytest.mark.asyncio
async def test_configuration_error_is_returned_not_raised(backend):
    service = ImageGenerationService(build_image_registry(backend), ProviderConfigResolver([], {}))

    response = await service.generate_image(ImageGenerationRequest(prompt="p", model="m"), "imageGeneratorPro")

    assert "No provider configured" in response.error
    assert backend.calls == []


@pytest.mark.asyncio
async def test_no_retry_on_failure(service_factory):
    backend = FakeBackend({GEMINI_GENERATE_CONTENT: {"success": False, "error": "API error (500): oops"}})

    response = await service_factory(backend).generate_image(ImageGenerationRequest(prompt="p", model="m"))

    assert response.error_details.status_code == 500
    assert len(backend.calls) == 1


@pytest.mark.asyncio
async def test_cancelled_token_short_circuits(service_factory):
    backend = FakeBackend()
    token = CancellationToken()
    token.cancel()

    response = await service_factory(backend).generate_image(
        ImageGenerationRequest(prompt="p", model="m"), token=token
    )

    assert response.cancelled
    assert backend.calls == []


@pytest.mark.asyncio
async def test_edit_image_normalizes_inputs(service_factory):
    backend = FakeBackend({GEMINI_GENERATE_CONTENT: {"success": True, "imageData": PNG_B64}})
    request = ImageGenerationRequest(
        prompt="make it blue", model="m", input_images=[f"data:image/png;base64,{PNG_B64}"]
    )

    response = await service_factory(backend).edit_image(request)

    assert response.ok
    assert backend.params_for(GEMINI_GENERATE_CONTENT)["inputImages"] == [PNG_B64]
    assert request.input_images == [f"data:image/png;base64,{PNG_B64}"]


@pytest.mark.asyncio
async def test_edit_image_requires_input(service_factory, backend):
    response = await service_factory(backend).edit_image(ImageGenerationRequest(prompt="p", model="m"))

    assert response.error
    assert backend.calls == []


def test_provider_capabilities(service_factory, backend):
    service = service_factory(backend)

    pro = service.get_provider_capabilities("imageGeneratorPro")
    fast = service.get_provider_capabilities("imageGeneratorFast")

    assert pro["id"] == "gemini"
    assert pro["supportsMultipleInputImages"] is True
    assert fast["id"] == "flux"
    assert fast["maxInputImages"] == 1
    assert service.get_provider_capabilities("unknownNode") is None
