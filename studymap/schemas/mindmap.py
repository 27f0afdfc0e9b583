from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ── Raw concept tree (as produced by the generation call) ────────────────────

class ConceptNode(BaseModel):
    """A single node in the nested concept tree (recursive)."""
    id: str
    label: str
    summary: Optional[str] = None
    children: List[ConceptNode] = []


# ── Normalized graph ─────────────────────────────────────────────────────────

class GraphNode(BaseModel):
    """A node of the flat mind map graph. Children are referenced by id."""
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    summary: Optional[str] = None
    level: int = Field(..., ge=0, description="Depth from the root (root = 0)")
    child_ids: List[str] = []
    parent_connection_ids: List[str] = []


class Edge(BaseModel):
    """Directed parent → child connection. Serialized with 'from'/'to' keys."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, serialize_by_alias=True)

    from_id: str = Field(..., alias="from")
    to_id: str = Field(..., alias="to")
    strength: float = Field(..., gt=0, le=1)


class MindMap(BaseModel):
    """Flat mind map: nodes in traversal order plus parent → child edges."""
    model_config = ConfigDict(frozen=True)

    title: str
    nodes: List[GraphNode]
    edges: List[Edge] = []

    @property
    def root(self) -> Optional[GraphNode]:
        return next((n for n in self.nodes if n.level == 0), None)

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        return next((n for n in self.nodes if n.id == node_id), None)

    def validate_tree(self) -> List[str]:
        """
        Check the tree invariants and return a list of problems.
        An empty list means the map is a single-rooted connected tree.
        """
        problems: List[str] = []
        ids = [n.id for n in self.nodes]
        known = set(ids)

        if len(known) != len(ids):
            problems.append("node ids are not unique")

        roots = [n.id for n in self.nodes if n.level == 0]
        if len(roots) != 1:
            problems.append(f"expected exactly one root, found {len(roots)}")

        for node in self.nodes:
            for child_id in node.child_ids:
                if child_id not in known:
                    problems.append(f"node '{node.id}' references missing child '{child_id}'")
        for edge in self.edges:
            for ref in (edge.from_id, edge.to_id):
                if ref not in known:
                    problems.append(f"edge references missing node '{ref}'")

        if len(roots) == 1 and not problems:
            children: Dict[str, List[str]] = {n.id: n.child_ids for n in self.nodes}
            seen = set()
            stack = [roots[0]]
            while stack:
                current = stack.pop()
                if current in seen:
                    problems.append(f"node '{current}' is reachable twice (cycle or shared child)")
                    continue
                seen.add(current)
                stack.extend(children.get(current, []))
            orphans = known - seen
            if orphans:
                problems.append(f"unreachable nodes: {sorted(orphans)}")

        return problems


class Position(BaseModel):
    """2-D coordinate before the viewer's pan/zoom transform."""
    model_config = ConfigDict(frozen=True)

    x: float
    y: float


# ── Requests ─────────────────────────────────────────────────────────────────

class MindMapRequest(BaseModel):
    """Request body for mind map generation."""
    text: str = Field(..., min_length=20, description="Educational text to turn into a mind map")
    title: str = Field(default="Untitled", min_length=1, description="Document title, used as the root label")


class LayoutRequest(BaseModel):
    """Request body for laying out an existing mind map."""
    mind_map: MindMap
    viewport_width: float = Field(..., gt=0)
    viewport_height: float = Field(..., gt=0)


# ── Responses ────────────────────────────────────────────────────────────────

class MindMapLayoutResponse(BaseModel):
    """A mind map together with its computed node positions."""
    mind_map: MindMap
    positions: Dict[str, Position]
    used_fallback: bool = False


class LayoutResponse(BaseModel):
    positions: Dict[str, Position]
