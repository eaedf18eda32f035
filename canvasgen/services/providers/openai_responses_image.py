"""OpenAI Responses API image provider (``openaiResponses`` protocol).

The model answers in text; the image is salvaged from a data URI or a bare
base64 blob inside that text. Input images travel as named files.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from canvasgen.services.backend import OPENAI_RESPONSES, BackendResult
from canvasgen.services.image_data import extract_base64_image_from_text, normalize_image_input
from canvasgen.services.provider_config import ProviderConfig, ProviderProtocol
from canvasgen.services.providers.base import (
    BackendParams,
    ImageGenerationProvider,
    ImageGenerationRequest,
    ImageGenerationResponse,
    compact,
    normalize_base_url,
)


@dataclass
class InputFile:
    data: str
    mime_type: str
    file_name: str

    def to_payload(self) -> dict[str, Any]:
        return {"data": self.data, "mimeType": self.mime_type, "fileName": self.file_name}


@dataclass
class OpenAIResponsesParams(BackendParams):
    command: ClassVar[str] = OPENAI_RESPONSES

    base_url: str
    api_key: str
    model: str
    prompt: str
    files: list[InputFile] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return compact({
            "baseUrl": self.base_url,
            "apiKey": self.api_key,
            "model": self.model,
            "prompt": self.prompt,
            "files": [f.to_payload() for f in self.files],
        })


class OpenAIResponsesImageProvider(ImageGenerationProvider):
    id = "openai-responses"
    name = "OpenAI Responses"
    protocol = ProviderProtocol.OPENAI_RESPONSES.value

    max_input_images = 10

    def build_backend_params(
        self, request: ImageGenerationRequest, config: ProviderConfig
    ) -> OpenAIResponsesParams:
        files = []
        for index, image in enumerate(request.input_images, start=1):
            normalized = normalize_image_input(image)
            files.append(InputFile(normalized.base64, normalized.mime_type, f"input-{index}"))
        return OpenAIResponsesParams(
            base_url=normalize_base_url(config.base_url),
            api_key=config.api_key,
            model=request.model,
            prompt=request.prompt,
            files=files,
        )

    def request_url(self, request: ImageGenerationRequest, config: ProviderConfig) -> str:
        return f"{normalize_base_url(config.base_url)}/v1/responses"

    def map_result(
        self,
        result: BackendResult,
        request: ImageGenerationRequest,
        config: ProviderConfig,
    ) -> ImageGenerationResponse:
        content = result.get("content")
        image_data = extract_base64_image_from_text(content)
        if not image_data:
            return self._empty_result(
                request, config,
                {"success": result.success, "hasContent": bool(content)},
                text=content,
            )
        return ImageGenerationResponse(image_data=image_data, text=content, metadata={"model": request.model})
