"""Pydantic v2 schemas for task manager entries."""

from __future__ import annotations

from pydantic import BaseModel, Field

from canvasgen.services.task_manager import TaskStatus, TaskType


class TaskRegister(BaseModel):
    """Schema for handing an already created provider task to the task manager."""

    task_id: str = Field(min_length=1)
    node_id: str = Field(min_length=1)
    canvas_id: str = Field(min_length=1)
    type: TaskType = TaskType.VIDEO
    node_type: str | None = None
    # Kling only: the mode the task was created with.
    mode: str | None = None


class TaskRead(BaseModel):
    """Schema for reading a task."""

    task_id: str
    node_id: str
    canvas_id: str
    type: TaskType
    status: TaskStatus
    progress: int
    stage: str
    error: str | None = None
    start_time: float

    model_config = {"from_attributes": True}


class TaskCancelResult(BaseModel):
    cancelled: bool


class TaskCleanupResult(BaseModel):
    removed: int
