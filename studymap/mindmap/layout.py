"""
Radial layout for mind maps.

Every child is placed on a half-circle fan around its parent, starting
straight up (-π/2) and sweeping clockwise. The radius grows with the square
root of the node's level. Sibling subtrees are not checked for overlap.
"""

import logging
import math
from collections import Counter
from typing import Dict, List, Optional

from studymap.schemas.mindmap import GraphNode, MindMap, Position

logger = logging.getLogger(__name__)

BASE_RADIUS = 150.0
BASE_ANGLE = -math.pi / 2
ORIGIN = Position(x=0.0, y=0.0)


def root_anchor(viewport_width: float, viewport_height: float) -> Position:
    """Horizontally centred, one third down, leaving room for the tree below."""
    return Position(x=viewport_width / 2, y=float(math.floor(viewport_height / 3)))


class RadialLayout:
    """
    One layout pass over one mind map.

    Owns the id index and the position cache, so independent maps never
    share state. ``evaluations`` counts how often each node's position was
    computed; ``reference_errors`` lists nodes placed at the origin because
    their parent could not be resolved.
    """

    def __init__(self, mind_map: MindMap, viewport_width: float, viewport_height: float):
        self.mind_map = mind_map
        self.anchor = root_anchor(viewport_width, viewport_height)
        self.evaluations: Counter = Counter()
        self.reference_errors: List[str] = []
        self._positions: Dict[str, Position] = {}

        self._parents: Dict[str, GraphNode] = {}
        for node in mind_map.nodes:
            for child_id in node.child_ids:
                # first listed parent wins, matching a front-to-back scan
                self._parents.setdefault(child_id, node)

    def compute(self) -> Dict[str, Position]:
        for node in self.mind_map.nodes:
            self.position_of(node)
        return dict(self._positions)

    def position_of(self, node: GraphNode) -> Position:
        cached = self._positions.get(node.id)
        if cached is not None:
            return cached

        # Walk up to the first ancestor that is already placed (or unplaceable),
        # then place the chain top-down.
        chain: List[GraphNode] = []
        on_chain = set()
        current: Optional[GraphNode] = node
        while current is not None and current.id not in self._positions:
            if current.id in on_chain:
                self._place_at_origin(current, "parent chain loops back on itself")
                break
            chain.append(current)
            on_chain.add(current.id)
            if current.level == 0:
                break
            current = self._parents.get(current.id)

        for item in reversed(chain):
            if item.id not in self._positions:
                self._place(item)
        return self._positions[node.id]

    def _place(self, node: GraphNode) -> None:
        self.evaluations[node.id] += 1

        if node.level == 0:
            self._positions[node.id] = self.anchor
            return

        parent = self._parents.get(node.id)
        if parent is None or parent.id not in self._positions:
            self._place_at_origin(node, "parent not found")
            return

        parent_pos = self._positions[parent.id]
        siblings = parent.child_ids
        index = siblings.index(node.id)

        angle_step = math.pi / max(len(siblings) - 1, 1)
        angle = BASE_ANGLE + angle_step * index
        radius = BASE_RADIUS * math.sqrt(node.level)

        self._positions[node.id] = Position(
            x=parent_pos.x + radius * math.cos(angle),
            y=parent_pos.y + radius * math.sin(angle),
        )

    def _place_at_origin(self, node: GraphNode, why: str) -> None:
        if node.id in self._positions:
            return
        if self.evaluations[node.id] == 0:
            self.evaluations[node.id] += 1
        logger.warning(
            f"[LAYOUT] Layout reference error in '{self.mind_map.title}': "
            f"node '{node.id}' placed at origin ({why})"
        )
        self.reference_errors.append(node.id)
        self._positions[node.id] = ORIGIN


def layout(mind_map: MindMap, viewport_width: float, viewport_height: float) -> Dict[str, Position]:
    """Map every node id of ``mind_map`` to its position for the given viewport."""
    return RadialLayout(mind_map, viewport_width, viewport_height).compute()
