"""
Viewer interaction state for a laid-out mind map.

ViewerState is immutable: every transition returns a new state and leaves
the mind map itself untouched. ``build_view`` combines map, positions and
state into what a renderer draws.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from studymap.schemas.mindmap import MindMap, Position

MIN_ZOOM = 0.5
MAX_ZOOM = 3.0
ZOOM_STEP = 0.2
LABEL_MAX_CHARS = 10


class StudyProgress(BaseModel):
    """Serializable bookmarks + notes for one map, keyed by its title."""
    mind_map_id: str
    saved_nodes: List[str] = []
    study_notes: Dict[str, str] = {}
    last_modified: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def progress_key(title: str) -> str:
    """Store key used by the surrounding application for a map's progress."""
    return f"mindmap-{title}"


class ViewerState(BaseModel):
    model_config = ConfigDict(frozen=True)

    zoom: float = Field(default=1.0, ge=MIN_ZOOM, le=MAX_ZOOM)
    pan: Position = Position(x=0.0, y=0.0)
    selected_node_id: Optional[str] = None
    saved_node_ids: FrozenSet[str] = frozenset()
    notes_by_node_id: Dict[str, str] = {}
    dragging: bool = False
    drag_anchor: Optional[Position] = None
    exam_mode: bool = False

    def _replace(self, **changes) -> ViewerState:
        return self.model_copy(update=changes)

    # ── Zoom ──────────────────────────────────────────────────────────────────

    def zoom_in(self) -> ViewerState:
        return self._replace(zoom=min(round(self.zoom + ZOOM_STEP, 2), MAX_ZOOM))

    def zoom_out(self) -> ViewerState:
        return self._replace(zoom=max(round(self.zoom - ZOOM_STEP, 2), MIN_ZOOM))

    def reset_view(self) -> ViewerState:
        return self._replace(zoom=1.0, pan=Position(x=0.0, y=0.0))

    # ── Pan ───────────────────────────────────────────────────────────────────

    def begin_pan(self, pointer: Position) -> ViewerState:
        anchor = Position(x=pointer.x - self.pan.x, y=pointer.y - self.pan.y)
        return self._replace(dragging=True, drag_anchor=anchor)

    def update_pan(self, pointer: Position) -> ViewerState:
        if not self.dragging or self.drag_anchor is None:
            return self
        return self._replace(
            pan=Position(x=pointer.x - self.drag_anchor.x, y=pointer.y - self.drag_anchor.y)
        )

    def end_pan(self) -> ViewerState:
        return self._replace(dragging=False, drag_anchor=None)

    # ── Selection, bookmarks, notes ───────────────────────────────────────────

    def select_node(self, node_id: str) -> ViewerState:
        """Select ``node_id``; selecting the selected node clears the selection."""
        return self._replace(
            selected_node_id=None if self.selected_node_id == node_id else node_id
        )

    def toggle_saved(self, node_id: str) -> ViewerState:
        return self._replace(saved_node_ids=self.saved_node_ids ^ {node_id})

    def set_note(self, node_id: str, text: str) -> ViewerState:
        return self._replace(notes_by_node_id={**self.notes_by_node_id, node_id: text})

    def toggle_exam_mode(self) -> ViewerState:
        return self._replace(exam_mode=not self.exam_mode)

    # ── Renderer / persistence helpers ────────────────────────────────────────

    def transform(self) -> Tuple[float, float, float]:
        """(zoom, pan_x, pan_y) to apply on top of layout positions."""
        return self.zoom, self.pan.x, self.pan.y

    def to_progress(self, title: str) -> StudyProgress:
        return StudyProgress(
            mind_map_id=title,
            saved_nodes=sorted(self.saved_node_ids),
            study_notes=dict(self.notes_by_node_id),
        )

    @classmethod
    def from_progress(cls, progress: StudyProgress) -> ViewerState:
        return cls(
            saved_node_ids=frozenset(progress.saved_nodes),
            notes_by_node_id=dict(progress.study_notes),
        )


# ── View model ───────────────────────────────────────────────────────────────

class NodeView(BaseModel):
    id: str
    label: str
    display_label: str
    level: int
    position: Position
    is_selected: bool = False
    is_saved: bool = False
    highlighted: bool = False
    note: Optional[str] = None


class EdgeView(BaseModel):
    from_position: Position
    to_position: Position
    strength: float


class MindMapView(BaseModel):
    title: str
    zoom: float
    pan: Position
    exam_mode: bool
    nodes: List[NodeView]
    edges: List[EdgeView]


def display_label(label: str) -> str:
    if len(label) > LABEL_MAX_CHARS:
        return label[:LABEL_MAX_CHARS] + "..."
    return label


def build_view(mind_map: MindMap, positions: Dict[str, Position], state: ViewerState) -> MindMapView:
    """
    Render-ready model. Highlighting and notes only show in exam mode; edges
    whose endpoints have no position are dropped.
    """
    nodes = []
    for node in mind_map.nodes:
        position = positions.get(node.id)
        if position is None:
            continue
        is_saved = node.id in state.saved_node_ids
        nodes.append(
            NodeView(
                id=node.id,
                label=node.label,
                display_label=display_label(node.label),
                level=node.level,
                position=position,
                is_selected=state.selected_node_id == node.id,
                is_saved=is_saved,
                highlighted=state.exam_mode and is_saved,
                note=state.notes_by_node_id.get(node.id) if state.exam_mode else None,
            )
        )

    edges = [
        EdgeView(
            from_position=positions[edge.from_id],
            to_position=positions[edge.to_id],
            strength=edge.strength,
        )
        for edge in mind_map.edges
        if edge.from_id in positions and edge.to_id in positions
    ]

    return MindMapView(
        title=mind_map.title,
        zoom=state.zoom,
        pan=state.pan,
        exam_mode=state.exam_mode,
        nodes=nodes,
        edges=edges,
    )
