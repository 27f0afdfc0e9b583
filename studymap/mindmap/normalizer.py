"""
StudyMap — Mind Map Response Normalizer
========================================
Turns the free-text answer of a generation call into a MindMap.

  • Prompt embeds the title and a bounded prefix of the source text
  • First top-level JSON object is cut out by brace matching
  • Lenient intermediate model (every field optional) is repaired into ConceptNode
  • Any failure on the way yields the deterministic fallback map, never an error
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from studymap.core.config import settings
from studymap.core.errors import DuplicateNodeIdError, GenerationUnavailable, MalformedResponse
from studymap.mindmap.tree_builder import build
from studymap.schemas.mindmap import ConceptNode, Edge, GraphNode, MindMap

logger = logging.getLogger(__name__)

GenerateFn = Callable[[str], Awaitable[str]]

FALLBACK_STRENGTHS = (0.8, 0.7, 0.6)

# Deepest concept tree accepted from a model answer. Each tree level costs two
# JSON containers (the node object and its children array).
MAX_TREE_DEPTH = 50
MAX_JSON_NESTING = 2 * MAX_TREE_DEPTH + 2


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PROMPT
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

MIND_MAP_INSTRUCTIONS = (
    "Analyze this educational content and create a hierarchical mind map structure.\n"
    "Requirements:\n"
    "1. A hierarchical structure with one main topic and subtopics.\n"
    "2. Each node has a concise label (2-5 words) and a brief summary (1-2 sentences).\n"
    "3. Maximum 3 levels deep.\n"
    "4. The main topic branches into 3-5 key concepts.\n"
    "5. Each key concept has 2-4 subtopics.\n"
    "6. Every id is unique across the whole tree.\n\n"
)

MIND_MAP_FORMAT = (
    "Format the response as a JSON object with this structure:\n"
    "{\n"
    '  "nodes": [\n'
    "    {\n"
    '      "id": "1",\n'
    '      "label": "Main Topic",\n'
    '      "summary": "Brief summary of the topic",\n'
    '      "children": [\n'
    '        {"id": "2", "label": "Subtopic", "summary": "Brief summary", "children": []}\n'
    "      ]\n"
    "    }\n"
    "  ]\n"
    "}\n"
)


def build_mind_map_prompt(source_text: str, title: str, char_budget: Optional[int] = None) -> str:
    """Prompt for the generation call; source text is cut to ``char_budget`` chars."""
    char_budget = char_budget or settings.MIND_MAP_CHAR_BUDGET
    return (
        f"{MIND_MAP_INSTRUCTIONS}"
        f"Content to analyze:\n"
        f"Title: {title}\n"
        f"{source_text[:char_budget]}\n\n"
        f"{MIND_MAP_FORMAT}"
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# JSON EXTRACTION
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def json_nesting_depth(fragment: str) -> int:
    """Deepest ``{``/``[`` nesting in a JSON fragment, ignoring string literals."""
    depth = deepest = 0
    in_string = False
    escaped = False
    for ch in fragment:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in "{[":
            depth += 1
            deepest = max(deepest, depth)
        elif ch in "}]":
            depth -= 1
    return deepest


def extract_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced top-level ``{...}`` in ``text``.
    Braces inside JSON string literals are ignored. None if there is no
    opening brace or the first object never closes.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# LENIENT INTERMEDIATE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class RawConceptNode(BaseModel):
    """Concept node as the model actually returns it: every field optional."""
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: Optional[str] = None
    label: Optional[str] = Field(default=None, validation_alias=AliasChoices("label", "title", "name"))
    summary: Optional[str] = Field(default=None, validation_alias=AliasChoices("summary", "description"))
    children: List[RawConceptNode] = []

    @field_validator("children", mode="before")
    @classmethod
    def coerce_children(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, list):
            # bare strings are leaf labels
            return [{"label": c} if isinstance(c, str) else c for c in v]
        return v


def _nest_flat_nodes(nodes: List[Any]) -> Any:
    """
    Some answers list every node flat with children given as id strings.
    Rebuild the nesting from ``nodes[0]``; strings that match no id stay labels.
    Each id may be placed once: a cycle or a child shared by two parents is
    rejected as soon as it is reached.
    """
    index: Dict[str, Dict[str, Any]] = {
        str(n["id"]): n for n in nodes if isinstance(n, dict) and "id" in n
    }
    placed: Set[str] = set()

    def nest(entry: Any, path: Tuple[str, ...]) -> Any:
        if not isinstance(entry, dict):
            return entry
        if len(path) >= MAX_TREE_DEPTH:
            raise MalformedResponse(f"Concept tree deeper than {MAX_TREE_DEPTH} levels")
        node_id = str(entry.get("id", ""))
        if node_id and node_id in path:
            raise MalformedResponse(f"Cycle through node '{node_id}'")
        if node_id:
            if node_id in placed:
                raise MalformedResponse(f"Node '{node_id}' has more than one parent")
            placed.add(node_id)
        children = entry.get("children") or []
        if not isinstance(children, list):
            return entry
        nested = []
        for child in children:
            if isinstance(child, (str, int)) and str(child) in index:
                child = index[str(child)]
            nested.append(nest(child, path + (node_id,)))
        return {**entry, "children": nested}

    return nest(nodes[0], ())


def _root_payload(data: Any) -> Any:
    if not isinstance(data, dict):
        raise MalformedResponse("Top-level JSON value is not an object")

    if "nodes" in data:
        nodes = data["nodes"]
        if not isinstance(nodes, list) or not nodes:
            raise MalformedResponse("'nodes' is empty or not a list")
        if len(nodes) > 1:
            return _nest_flat_nodes(nodes)
        return nodes[0]
    if "root_node" in data:
        return data["root_node"]
    return data


def _repair(raw: RawConceptNode, path: Tuple[int, ...], title: str) -> ConceptNode:
    node_id = (raw.id or "").strip() or "node-" + "-".join(str(p) for p in path)
    label = (raw.label or "").strip()
    if not label:
        label = title if len(path) == 1 else node_id
    summary = (raw.summary or "").strip() or None
    return ConceptNode(
        id=node_id,
        label=label,
        summary=summary,
        children=[_repair(child, path + (i,), title) for i, child in enumerate(raw.children)],
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# TAGGED PARSE RESULT
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class ParseOk:
    root: ConceptNode


@dataclass(frozen=True)
class ParseFallback:
    reason: str


ParseResult = Union[ParseOk, ParseFallback]


def parse_concept_tree(raw_text: Optional[str], title: str) -> ParseResult:
    """Parse a generation answer into a ConceptNode tree without raising."""
    try:
        if not isinstance(raw_text, str) or not raw_text.strip():
            raise GenerationUnavailable("Empty AI response received")

        fragment = extract_json_object(raw_text)
        if fragment is None:
            raise MalformedResponse("No JSON object found in AI response")
        if json_nesting_depth(fragment) > MAX_JSON_NESTING:
            raise MalformedResponse(f"JSON nested deeper than {MAX_JSON_NESTING} levels")

        data = json.loads(fragment)
        raw_root = RawConceptNode.model_validate(_root_payload(data))
        return ParseOk(root=_repair(raw_root, (0,), title))
    except (GenerationUnavailable, ValueError, RecursionError) as e:
        # json.JSONDecodeError and pydantic.ValidationError are ValueErrors
        return ParseFallback(reason=f"{type(e).__name__}: {str(e)[:200]}")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# FALLBACK + ENTRY POINTS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def fallback_mind_map(title: str) -> MindMap:
    """Deterministic minimal map: the title plus three generic key concepts."""
    child_ids = ["2", "3", "4"]
    nodes = [GraphNode(id="1", label=title, level=0, child_ids=child_ids)]
    edges = []
    for i, (child_id, strength) in enumerate(zip(child_ids, FALLBACK_STRENGTHS), start=1):
        nodes.append(
            GraphNode(id=child_id, label=f"Key Concept {i}", level=1, parent_connection_ids=["1"])
        )
        edges.append(Edge(from_id="1", to_id=child_id, strength=strength))
    return MindMap(title=title, nodes=nodes, edges=edges)


@dataclass(frozen=True)
class NormalizedMindMap:
    mind_map: MindMap
    used_fallback: bool = False
    reason: Optional[str] = None


def _fallback(title: str, reason: str) -> NormalizedMindMap:
    logger.warning(f"[MINDMAP] Using fallback map for '{title}': {reason}")
    return NormalizedMindMap(mind_map=fallback_mind_map(title), used_fallback=True, reason=reason)


async def normalize_response(
    source_text: str,
    title: str,
    generate: Optional[GenerateFn],
) -> NormalizedMindMap:
    """
    Generate and normalize a mind map, reporting whether the fallback was used.
    A single generation attempt is made; nothing here raises on bad output.
    """
    if generate is None:
        return _fallback(title, "no generation service available")

    prompt = build_mind_map_prompt(source_text, title)
    logger.info(f"[MINDMAP] Requesting mind map for '{title}' ({len(prompt)} prompt chars)")

    try:
        raw = await generate(prompt)
    except Exception as e:
        return _fallback(title, f"GenerationUnavailable: {str(e)[:200]}")

    parsed = parse_concept_tree(raw, title)
    if isinstance(parsed, ParseFallback):
        return _fallback(title, parsed.reason)

    try:
        mind_map = build(parsed.root, title)
    except DuplicateNodeIdError as e:
        return _fallback(title, f"DuplicateNodeIdError: {e}")

    logger.info(f"[MINDMAP] ✓ {len(mind_map.nodes)} nodes, {len(mind_map.edges)} edges")
    return NormalizedMindMap(mind_map=mind_map)


async def normalize(source_text: str, title: str, generate: Optional[GenerateFn]) -> MindMap:
    """Source text + title → MindMap. Always returns a renderable map."""
    return (await normalize_response(source_text, title, generate)).mind_map
