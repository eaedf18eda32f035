"""Master API router: mounts all sub-routers."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from canvasgen.api.deps import get_services
from canvasgen.api.providers import router as providers_router
from canvasgen.api.tasks import router as tasks_router
from canvasgen.services.container import GenerationServices
from canvasgen.services.task_manager import TaskStatus

api_router = APIRouter(prefix="/api", redirect_slashes=False)

api_router.include_router(providers_router)
api_router.include_router(tasks_router)


@api_router.get("/health")
async def health(services: GenerationServices = Depends(get_services)) -> dict[str, Any]:
    """Liveness plus a count of tasks still being polled."""
    running = sum(1 for t in services.task_manager.get_all_tasks() if t.status is TaskStatus.RUNNING)
    return {
        "status": "healthy",
        "service": services.settings.APP_NAME,
        "image_providers": len(services.image_registry),
        "video_providers": len(services.video_registry),
        "running_tasks": running,
    }
