"""Cross-canvas task manager for long-running video jobs.

Polling has to survive the user switching canvases, so it is owned here
rather than by the node that started it. Every poll result is written twice:
into the live node state when the owning canvas is the active one, and
always into the backing copy of the owning canvas, so that switching back
shows the latest state.

Tasks are keyed by ``(canvas_id, node_id)``; registering a second task for
the same key cancels the first.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from canvasgen.services.cancellation import CancellationToken, cancellable_sleep
from canvasgen.services.errors import TASK_TIMEOUT_MESSAGE, ProviderConfigError
from canvasgen.services.provider_config import VEO_GENERATOR, VIDEO_GENERATOR
from canvasgen.services.providers.base import TaskStage, VideoProgressInfo
from canvasgen.services.video_gen import VideoGenerationService
from canvasgen.services.workspace_store import NodeData, WorkspaceStore

logger = logging.getLogger(__name__)

TaskKey = tuple[str, str]


class TaskStatus(str, enum.Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.RUNNING


class TaskType(str, enum.Enum):
    VIDEO = "video"
    VEO = "veo"


@dataclass
class TaskInfo:
    task_id: str
    node_id: str
    canvas_id: str
    type: TaskType
    status: TaskStatus = TaskStatus.RUNNING
    progress: int = 0
    stage: str = TaskStage.QUEUED.value
    error: str | None = None
    start_time: float = field(default_factory=time.time)

    @property
    def key(self) -> TaskKey:
        return (self.canvas_id, self.node_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskId": self.task_id,
            "nodeId": self.node_id,
            "canvasId": self.canvas_id,
            "type": self.type.value,
            "status": self.status.value,
            "progress": self.progress,
            "stage": self.stage,
            "error": self.error,
            "startTime": self.start_time,
        }


def _status_for_stage(stage: TaskStage) -> TaskStatus:
    if stage is TaskStage.COMPLETED:
        return TaskStatus.COMPLETED
    if stage is TaskStage.FAILED:
        return TaskStatus.FAILED
    return TaskStatus.RUNNING


def _node_status(stage: TaskStage) -> str:
    if stage is TaskStage.COMPLETED:
        return "success"
    if stage is TaskStage.FAILED:
        return "error"
    return "loading"


class TaskManager:
    """Owns every running video task and the polling driver behind it."""

    def __init__(
        self,
        video_service: VideoGenerationService,
        workspace: WorkspaceStore,
        *,
        poll_max_attempts: int | None = None,
        poll_interval: float | None = None,
    ) -> None:
        self.video_service = video_service
        self.workspace = workspace
        self.poll_max_attempts = (
            video_service.poll_max_attempts if poll_max_attempts is None else poll_max_attempts
        )
        self.poll_interval = video_service.poll_interval if poll_interval is None else poll_interval

        self._tasks: dict[TaskKey, TaskInfo] = {}
        self._tokens: dict[TaskKey, CancellationToken] = {}
        self._runners: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Registration / cancellation
    # ------------------------------------------------------------------

    def register_task(
        self,
        task_id: str,
        node_id: str,
        canvas_id: str,
        task_type: TaskType | str = TaskType.VIDEO,
        *,
        node_type: str | None = None,
        **options: Any,
    ) -> TaskInfo:
        """Start polling ``task_id`` on behalf of ``node_id`` in ``canvas_id``.

        Must be called from inside a running event loop. ``options`` are
        forwarded to the provider's status lookups.
        """
        task_type = TaskType(task_type)
        self.cancel_task(node_id, canvas_id)

        info = TaskInfo(task_id=task_id, node_id=node_id, canvas_id=canvas_id, type=task_type)
        token = CancellationToken()
        self._tasks[info.key] = info
        self._tokens[info.key] = token

        if task_type is TaskType.VEO:
            driver = self._drive_veo(info, token, options)
        else:
            driver = self._drive_video(info, token, node_type or VIDEO_GENERATOR, options)

        try:
            runner = asyncio.create_task(driver, name=f"poll:{canvas_id}:{node_id}")
        except RuntimeError:
            # No running loop, nothing would ever poll this task.
            driver.close()
            self._tasks.pop(info.key, None)
            self._tokens.pop(info.key, None)
            raise
        self._runners.add(runner)
        runner.add_done_callback(self._runners.discard)

        logger.info("Registered %s task %s for node %s on canvas %s", task_type.value, task_id, node_id, canvas_id)
        return info

    def cancel_task(self, node_id: str, canvas_id: str) -> None:
        """Cancel and forget the task at this key. No-op when there is none."""
        key = (canvas_id, node_id)
        token = self._tokens.pop(key, None)
        if token is not None:
            token.cancel()

        info = self._tasks.pop(key, None)
        if info is not None:
            if not info.status.is_terminal:
                info.status = TaskStatus.CANCELLED
            logger.info("Cancelled task %s for node %s on canvas %s", info.task_id, node_id, canvas_id)

    async def shutdown(self) -> None:
        """Cancel every driver and wait for all of them to exit."""
        for token in self._tokens.values():
            token.cancel()
        for info in self._tasks.values():
            if not info.status.is_terminal:
                info.status = TaskStatus.CANCELLED
        runners = list(self._runners)
        for runner in runners:
            runner.cancel()
        if runners:
            await asyncio.gather(*runners, return_exceptions=True)
        self._runners.clear()
        self._tasks.clear()
        self._tokens.clear()
        logger.info("Task manager stopped (%d drivers)", len(runners))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_task(self, node_id: str, canvas_id: str) -> TaskInfo | None:
        return self._tasks.get((canvas_id, node_id))

    def is_task_running(self, node_id: str, canvas_id: str) -> bool:
        info = self.get_task(node_id, canvas_id)
        return info is not None and info.status is TaskStatus.RUNNING

    def get_all_tasks(self) -> list[TaskInfo]:
        return list(self._tasks.values())

    def get_tasks_by_canvas(self, canvas_id: str) -> list[TaskInfo]:
        return [info for info in self._tasks.values() if info.canvas_id == canvas_id]

    def cleanup_completed_tasks(self) -> int:
        """Drop finished tasks; returns how many were removed."""
        finished = [key for key, info in self._tasks.items() if info.status.is_terminal]
        for key in finished:
            del self._tasks[key]
            self._tokens.pop(key, None)
        if finished:
            logger.debug("Cleaned up %d finished tasks", len(finished))
        return len(finished)

    # ------------------------------------------------------------------
    # Drivers
    # ------------------------------------------------------------------

    async def _drive_video(
        self,
        info: TaskInfo,
        token: CancellationToken,
        node_type: str,
        options: dict[str, Any],
    ) -> None:
        try:
            result = await self.video_service.poll_video_task(
                info.task_id,
                lambda progress: self._on_progress(info, token, progress),
                max_attempts=self.poll_max_attempts,
                interval=self.poll_interval,
                token=token,
                node_type=node_type,
                **options,
            )
            if token.cancelled:
                return
            if result.error:
                self._fail(info, token, result.error)
            else:
                self._complete(info, token)
        except Exception as exc:
            if not token.cancelled:
                logger.exception("Video task %s polling crashed", info.task_id)
                self._fail(info, token, str(exc) or "Task failed")

    async def _drive_veo(self, info: TaskInfo, token: CancellationToken, options: dict[str, Any]) -> None:
        try:
            provider, config = self.video_service.resolve(VEO_GENERATOR)
        except ProviderConfigError as exc:
            self._fail(info, token, str(exc))
            return

        try:
            for _ in range(self.poll_max_attempts):
                if token.cancelled:
                    return

                status = await provider.get_task_status(info.task_id, config, token, **options)
                if token.cancelled:
                    return
                if status.error and status.status is not TaskStage.FAILED:
                    self._fail(info, token, status.error)
                    return

                stage = status.status or TaskStage.QUEUED
                self._on_progress(
                    info, token,
                    VideoProgressInfo(progress=status.progress, stage=stage, task_id=info.task_id),
                )
                if stage is TaskStage.COMPLETED:
                    self._complete(info, token)
                    return
                if stage is TaskStage.FAILED:
                    self._fail(info, token, status.error or "Video generation failed")
                    return

                await cancellable_sleep(self.poll_interval, token)

            if not token.cancelled:
                self._fail(info, token, TASK_TIMEOUT_MESSAGE)
        except Exception as exc:
            if not token.cancelled:
                logger.exception("Veo task %s polling crashed", info.task_id)
                self._fail(info, token, str(exc) or "Task failed")

    # ------------------------------------------------------------------
    # State updates
    # ------------------------------------------------------------------

    def _is_current(self, info: TaskInfo, token: CancellationToken) -> bool:
        # A replaced or cancelled driver must not write over its successor.
        return not token.cancelled and self._tasks.get(info.key) is info

    def _on_progress(self, info: TaskInfo, token: CancellationToken, progress: VideoProgressInfo) -> None:
        if not self._is_current(info, token) or info.status.is_terminal:
            return
        info.progress = progress.progress
        info.stage = progress.stage.value
        info.status = _status_for_stage(progress.stage)
        self._sync(info, {
            "progress": progress.progress,
            "task_stage": progress.stage.value,
            "task_id": progress.task_id,
            "status": _node_status(progress.stage),
        })

    def _complete(self, info: TaskInfo, token: CancellationToken) -> None:
        if not self._is_current(info, token):
            return
        info.status = TaskStatus.COMPLETED
        info.progress = 100
        info.stage = TaskStage.COMPLETED.value
        self._sync(info, {
            "progress": 100,
            "task_stage": TaskStage.COMPLETED.value,
            "task_id": info.task_id,
            "status": "success",
        })
        logger.info("Task %s completed (node %s, canvas %s)", info.task_id, info.node_id, info.canvas_id)

    def _fail(self, info: TaskInfo, token: CancellationToken, error: str) -> None:
        if not self._is_current(info, token):
            return
        info.status = TaskStatus.FAILED
        info.stage = TaskStage.FAILED.value
        info.error = error
        self._sync(info, {"status": "error", "error": error, "task_stage": TaskStage.FAILED.value})
        logger.warning("Task %s failed: %s", info.task_id, error)

    def _sync(self, info: TaskInfo, data: NodeData) -> None:
        if self.workspace.active_canvas_id == info.canvas_id:
            self.workspace.update_live_node(info.node_id, data)
        self.workspace.update_canvas_node(info.canvas_id, info.node_id, data)
