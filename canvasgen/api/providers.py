"""Provider capability API: what each registered provider supports, and
which provider every editor node type currently resolves to."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from canvasgen.api.deps import get_services
from canvasgen.services.container import GenerationServices
from canvasgen.services.provider_config import IMAGE_NODE_TYPES, VIDEO_NODE_TYPES

router = APIRouter(prefix="/providers", tags=["Providers"])


@router.get("/image")
async def list_image_providers(services: GenerationServices = Depends(get_services)) -> dict[str, Any]:
    """List image providers and the capabilities bound to each image node type."""
    providers = services.image_registry.capabilities()
    return {
        "providers": providers,
        "node_types": {
            node_type: services.image_service.get_provider_capabilities(node_type)
            for node_type in IMAGE_NODE_TYPES
        },
        "total": len(providers),
    }


@router.get("/video")
async def list_video_providers(services: GenerationServices = Depends(get_services)) -> dict[str, Any]:
    """List video providers and the capabilities bound to each video node type."""
    providers = services.video_registry.capabilities()
    return {
        "providers": providers,
        "node_types": {
            node_type: services.video_service.get_video_provider_capabilities(node_type)
            for node_type in VIDEO_NODE_TYPES
        },
        "total": len(providers),
    }
