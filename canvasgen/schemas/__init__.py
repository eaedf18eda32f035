"""Pydantic v2 schemas package."""

from canvasgen.schemas.task import TaskCancelResult, TaskCleanupResult, TaskRead, TaskRegister

__all__ = [
    "TaskRegister",
    "TaskRead",
    "TaskCancelResult",
    "TaskCleanupResult",
]
