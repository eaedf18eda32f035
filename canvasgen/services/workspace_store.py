"""Workspace (canvas) node state the task manager writes progress into.

Two views exist: the live node map of the canvas currently open in the
editor, and the backing copy of every canvas. Switching canvases flushes the
live nodes into the backing copy and loads the target's nodes.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

NodeData = dict[str, Any]


@runtime_checkable
class WorkspaceStore(Protocol):
    @property
    def active_canvas_id(self) -> str | None: ...

    def update_live_node(self, node_id: str, data: NodeData) -> None: ...

    def update_canvas_node(self, canvas_id: str, node_id: str, data: NodeData) -> None: ...


class InMemoryWorkspaceStore:
    """Dict-backed store; good enough for a single editor process and tests."""

    def __init__(self, active_canvas_id: str | None = None) -> None:
        self._canvases: dict[str, dict[str, NodeData]] = {}
        self._live: dict[str, NodeData] = {}
        self._active_canvas_id = active_canvas_id
        if active_canvas_id is not None:
            self._canvases.setdefault(active_canvas_id, {})

    @property
    def active_canvas_id(self) -> str | None:
        return self._active_canvas_id

    def switch_canvas(self, canvas_id: str) -> None:
        if self._active_canvas_id is not None:
            self._canvases[self._active_canvas_id] = copy.deepcopy(self._live)
        self._active_canvas_id = canvas_id
        self._live = copy.deepcopy(self._canvases.setdefault(canvas_id, {}))
        logger.debug("Switched active canvas to %s (%d nodes)", canvas_id, len(self._live))

    def update_live_node(self, node_id: str, data: NodeData) -> None:
        # Nodes deleted from the live canvas are not resurrected.
        node = self._live.get(node_id)
        if node is None:
            return
        node.update(data)

    def update_canvas_node(self, canvas_id: str, node_id: str, data: NodeData) -> None:
        canvas = self._canvases.setdefault(canvas_id, {})
        canvas.setdefault(node_id, {}).update(data)

    def add_node(self, canvas_id: str, node_id: str, data: NodeData | None = None) -> None:
        """Create a node on ``canvas_id`` (and in the live view when it is active)."""
        self._canvases.setdefault(canvas_id, {})[node_id] = dict(data or {})
        if canvas_id == self._active_canvas_id:
            self._live[node_id] = dict(data or {})

    def live_node(self, node_id: str) -> NodeData | None:
        return self._live.get(node_id)

    def canvas_node(self, canvas_id: str, node_id: str) -> NodeData | None:
        return self._canvases.get(canvas_id, {}).get(node_id)
