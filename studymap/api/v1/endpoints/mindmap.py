import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from studymap.ai_engine import generate_text, generation_available
from studymap.core.config import settings
from studymap.mindmap.layout import layout
from studymap.mindmap.normalizer import normalize_response
from studymap.mindmap.viewer import MindMapView, ViewerState, build_view
from studymap.schemas.mindmap import (
    LayoutRequest,
    LayoutResponse,
    MindMap,
    MindMapLayoutResponse,
    MindMapRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 1. MIND MAP
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/mindmap", response_model=MindMapLayoutResponse)
async def create_mindmap(request: MindMapRequest):
    """Generate a mind map from text and lay it out for the default viewport."""
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="Text cannot be empty.")

    generate = generate_text if generation_available() else None
    result = await normalize_response(request.text, request.title, generate)
    positions = layout(
        result.mind_map,
        settings.DEFAULT_VIEWPORT_WIDTH,
        settings.DEFAULT_VIEWPORT_HEIGHT,
    )
    return MindMapLayoutResponse(
        mind_map=result.mind_map,
        positions=positions,
        used_fallback=result.used_fallback,
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 2. LAYOUT
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/mindmap/layout", response_model=LayoutResponse)
async def layout_mindmap(request: LayoutRequest):
    """Position an existing mind map for a viewport (e.g. after a resize)."""
    problems = request.mind_map.validate_tree()
    if problems:
        logger.warning(f"[LAYOUT] '{request.mind_map.title}' is not a well-formed tree: {problems}")
    positions = layout(request.mind_map, request.viewport_width, request.viewport_height)
    return LayoutResponse(positions=positions)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 3. VIEW
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class ViewRequest(BaseModel):
    mind_map: MindMap
    state: ViewerState = Field(default_factory=ViewerState, description="Current viewer state")
    viewport_width: Optional[float] = Field(default=None, gt=0)
    viewport_height: Optional[float] = Field(default=None, gt=0)


@router.post("/mindmap/view", response_model=MindMapView)
async def view_mindmap(request: ViewRequest):
    """Lay out a mind map and combine it with the viewer state into a render model."""
    positions = layout(
        request.mind_map,
        request.viewport_width or settings.DEFAULT_VIEWPORT_WIDTH,
        request.viewport_height or settings.DEFAULT_VIEWPORT_HEIGHT,
    )
    return build_view(request.mind_map, positions, request.state)
