"""
Nested concept tree → flat mind map graph.

Levels are assigned by pre-order depth and every parent → child pair gets an
edge whose strength decays with the child's depth.
"""

import logging
from typing import List, Optional, Set, Tuple

from studymap.core.errors import DuplicateNodeIdError
from studymap.schemas.mindmap import ConceptNode, Edge, GraphNode, MindMap

logger = logging.getLogger(__name__)

STRENGTH_DECAY = 0.2
MIN_STRENGTH = 0.1


def edge_strength(level: int) -> float:
    """Connection strength for an edge ending at a node on ``level``."""
    return max(round(1 - level * STRENGTH_DECAY, 4), MIN_STRENGTH)


def build(root: ConceptNode, title: Optional[str] = None) -> MindMap:
    """
    Flatten ``root`` into a MindMap.

    Nodes are emitted in pre-order with children visited in listed order.
    Raises DuplicateNodeIdError if any id appears twice in the tree.
    """
    nodes: List[GraphNode] = []
    edges: List[Edge] = []
    seen: Set[str] = set()

    # (node, level, parent_id); children pushed reversed to keep listed order
    stack: List[Tuple[ConceptNode, int, Optional[str]]] = [(root, 0, None)]
    while stack:
        node, level, parent_id = stack.pop()
        if node.id in seen:
            raise DuplicateNodeIdError(node.id)
        seen.add(node.id)

        nodes.append(
            GraphNode(
                id=node.id,
                label=node.label,
                summary=node.summary,
                level=level,
                child_ids=[child.id for child in node.children],
                parent_connection_ids=[parent_id] if parent_id is not None else [],
            )
        )
        if parent_id is not None:
            edges.append(Edge(from_id=parent_id, to_id=node.id, strength=edge_strength(level)))

        for child in reversed(node.children):
            stack.append((child, level + 1, node.id))

    logger.debug(f"[MINDMAP] Built graph: {len(nodes)} nodes, {len(edges)} edges")
    return MindMap(title=title if title is not None else root.label, nodes=nodes, edges=edges)
