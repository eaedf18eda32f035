"""Task manager API: register, inspect, cancel and clean up polling tasks."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from canvasgen.api.deps import get_services
from canvasgen.schemas.task import TaskCancelResult, TaskCleanupResult, TaskRead, TaskRegister
from canvasgen.services.container import GenerationServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["Tasks"])


@router.get("", response_model=list[TaskRead])
async def list_tasks(services: GenerationServices = Depends(get_services)):
    return services.task_manager.get_all_tasks()


@router.get("/canvas/{canvas_id}", response_model=list[TaskRead])
async def list_canvas_tasks(canvas_id: str, services: GenerationServices = Depends(get_services)):
    return services.task_manager.get_tasks_by_canvas(canvas_id)


@router.get("/{canvas_id}/{node_id}", response_model=TaskRead)
async def get_task(canvas_id: str, node_id: str, services: GenerationServices = Depends(get_services)):
    info = services.task_manager.get_task(node_id, canvas_id)
    if info is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return info


@router.post("", response_model=TaskRead, status_code=201)
async def register_task(body: TaskRegister, services: GenerationServices = Depends(get_services)):
    """Start polling a provider task; replaces any task already running for the node."""
    options = {"mode": body.mode} if body.mode else {}
    return services.task_manager.register_task(
        body.task_id,
        body.node_id,
        body.canvas_id,
        body.type,
        node_type=body.node_type,
        **options,
    )


@router.delete("/{canvas_id}/{node_id}", response_model=TaskCancelResult)
async def cancel_task(canvas_id: str, node_id: str, services: GenerationServices = Depends(get_services)):
    existed = services.task_manager.get_task(node_id, canvas_id) is not None
    services.task_manager.cancel_task(node_id, canvas_id)
    return TaskCancelResult(cancelled=existed)


@router.post("/cleanup", response_model=TaskCleanupResult)
async def cleanup_tasks(services: GenerationServices = Depends(get_services)):
    return TaskCleanupResult(removed=services.task_manager.cleanup_completed_tasks())
