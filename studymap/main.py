"""
StudyMap — Study Artifact Service
==================================
FastAPI entry point.
  • Global exception handler: every failure returns a JSON envelope
  • /api/v1/process: document upload → summary + mind map + flashcards + quiz
  • /api/v1/mindmap, /api/v1/mindmap/layout, /api/v1/mindmap/view: mind map only
  • Async timeout protection (configurable, default 5 min)
"""

import time
import asyncio
import logging
from pathlib import PurePath
from typing import Optional

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from studymap.ai_engine import generate_text, generation_available
from studymap.api.v1.endpoints.mindmap import router as mindmap_router
from studymap.core.config import settings
from studymap.core.errors import UnsupportedInput
from studymap.mindmap.layout import layout
from studymap.schemas.api import APIResponse, ErrorResponse, ProcessingMeta, ResponseData
from studymap.services.file_service import count_pdf_pages, extract_text_from_file
from studymap.services.session import StudySession

# ── Logging ──────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
)
logger = logging.getLogger(__name__)

# ── App ──────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="StudyMap",
    description=(
        "Educational AI microservice.\n"
        "Upload a document → receive a summary, a laid-out mind map, flashcards and a quiz."
    ),
    version="1.0.0",
    responses={
        400: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
)


# ── Global Exception Handler ────────────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all: every unhandled exception returns a clean JSON envelope."""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    body = ErrorResponse(
        status="error",
        message="An internal server error occurred.",
        detail=str(exc),
    )
    return JSONResponse(status_code=500, content=body.model_dump())


# ── CORS ─────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(mindmap_router, prefix="/api/v1", tags=["Mind Map"])


# ── Health Check ─────────────────────────────────────────────────────────────
@app.get("/", tags=["System"])
async def health_check():
    return {
        "status": "operational",
        "service": "StudyMap",
        "version": app.version,
        "ai_provider": settings.AI_PROVIDER,
        "ai_available": generation_available(),
    }


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# MAIN ENDPOINT — /api/v1/process
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@app.post(
    "/api/v1/process",
    response_model=APIResponse,
    tags=["Processing"],
    summary="Upload a document and receive all study artifacts",
)
async def process_upload(
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
):
    """
    Single endpoint that:
    1. Extracts text (PDF via PyMuPDF, TXT/MD decoded)
    2. Generates summary, mind map, flashcards and quiz concurrently
    3. Lays out the mind map for the default viewport
    4. Returns a unified APIResponse JSON envelope
    """
    start = time.perf_counter()

    # ── 1. Read file bytes ───────────────────────────────────────────────────
    content = await file.read()
    filename = file.filename or "unknown.txt"
    title = (title or "").strip() or PurePath(filename).stem or "Untitled"

    max_bytes = settings.MAX_FILE_SIZE_MB * 1024 * 1024
    if len(content) > max_bytes:
        body = ErrorResponse(
            status="error",
            message=f"File too large. Maximum size is {settings.MAX_FILE_SIZE_MB}MB.",
        )
        return JSONResponse(status_code=413, content=body.model_dump())

    # ── 2. Extract text ──────────────────────────────────────────────────────
    try:
        result = await extract_text_from_file(content, filename)
        extracted_text = result["text"]
    except UnsupportedInput as e:
        body = ErrorResponse(status="error", message=str(e))
        return JSONResponse(status_code=400, content=body.model_dump())
    except ValueError as e:
        body = ErrorResponse(status="error", message=f"Text extraction failed: {e}")
        return JSONResponse(status_code=422, content=body.model_dump())

    # ── 3. AI Processing with timeout ────────────────────────────────────────
    session = StudySession(title, generate_text if generation_available() else None)
    try:
        artifacts = await asyncio.wait_for(
            session.run(extracted_text),
            timeout=settings.AI_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        session.close()
        body = ErrorResponse(
            status="error",
            message=f"AI processing timed out after {settings.AI_TIMEOUT_SECONDS}s.",
            detail="The document may be too complex. Try a shorter document.",
        )
        return JSONResponse(status_code=504, content=body.model_dump())

    # ── 4. Layout + response ─────────────────────────────────────────────────
    positions = {}
    if artifacts.mind_map is not None:
        positions = layout(
            artifacts.mind_map,
            settings.DEFAULT_VIEWPORT_WIDTH,
            settings.DEFAULT_VIEWPORT_HEIGHT,
        )

    elapsed = time.perf_counter() - start
    total_pages = count_pdf_pages(content) if filename.lower().endswith(".pdf") else 1

    response = APIResponse(
        status="success",
        meta=ProcessingMeta(
            processing_time=f"{elapsed:.1f}s",
            file_name=filename,
            total_pages=total_pages,
        ),
        data=ResponseData(
            title=title,
            summary=artifacts.summary,
            mind_map=artifacts.mind_map,
            positions=positions,
            flashcards=artifacts.flashcards,
            quiz=artifacts.quiz,
        ),
        notices=artifacts.notices,
    )

    logger.info(
        f"[PROCESS] ✓ {filename} — {total_pages} pages — "
        f"{len(positions)} mind map nodes — {elapsed:.1f}s"
    )

    return response
