"""
StudyMap — AI Engine
=====================
Handles all interactions with AI providers (Groq + Gemini) for:
  1. Summary generation
  2. Mind map generation (via the normalizer)
  3. Flashcard generation
  4. Quiz generation

Features:
  - Multi-provider hybrid call with automatic failover
  - Every artifact has a deterministic fallback, so the pipeline never hard-fails
  - Concurrent generation with partial-failure tolerance
"""

import json
import logging
import asyncio
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from groq import AsyncGroq
from pydantic import ValidationError

from studymap.core.config import settings
from studymap.core.errors import GenerationUnavailable, MalformedResponse
from studymap.mindmap.normalizer import GenerateFn, extract_json_object, normalize_response
from studymap.schemas.study import Flashcard, QuizQuestion, StudyArtifacts, StudySummary

logger = logging.getLogger(__name__)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CLIENT INITIALIZATION
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

logger.info(f"[AI-ENGINE] Provider mode: {settings.AI_PROVIDER}")

groq_client: Optional[AsyncGroq] = None
if settings.GROQ_API_KEY:
    groq_client = AsyncGroq(api_key=settings.GROQ_API_KEY)
    logger.info("[AI-ENGINE] ✓ Groq client ready")
else:
    logger.warning("[AI-ENGINE] ✗ Groq API key missing")

if settings.GOOGLE_API_KEY:
    genai.configure(api_key=settings.GOOGLE_API_KEY, transport="rest")
    logger.info("[AI-ENGINE] ✓ Gemini client ready")
else:
    logger.warning("[AI-ENGINE] ✗ Google API key missing")


def generation_available() -> bool:
    """True when at least one provider allowed by AI_PROVIDER has a key."""
    provider = settings.AI_PROVIDER
    has_groq = bool(settings.GROQ_API_KEY)
    has_gemini = bool(settings.GOOGLE_API_KEY)
    if provider == "groq":
        return has_groq
    if provider == "gemini":
        return has_gemini
    return has_groq or has_gemini


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SYSTEM PROMPT — ANTI-HALLUCINATION + STRICT JSON
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

SYSTEM_PROMPT = (
    "CRITICAL RULES:\n"
    "1. You MUST base everything strictly on the provided document text.\n"
    "2. Do NOT use any external knowledge.\n"
    "3. Do NOT hallucinate or invent facts.\n"
    "4. Output ONLY valid JSON — no markdown fences, no commentary.\n"
    "5. Write in the SAME language as the source text.\n"
)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PROVIDER CALLS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

async def _call_groq(system_prompt: str, user_prompt: str) -> str:
    """Call Groq (Llama 3) with JSON mode and temperature=0."""
    if not groq_client:
        raise ValueError("Groq API Key missing")

    logger.info(f"[AI-ENGINE] Calling Groq ({settings.GROQ_MODEL})...")
    completion = await groq_client.chat.completions.create(
        model=settings.GROQ_MODEL,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        response_format={"type": "json_object"},
        temperature=0,
        max_tokens=8000,
    )
    result = completion.choices[0].message.content
    logger.info("[AI-ENGINE] ✓ Groq call succeeded")
    return result


async def _call_gemini(system_prompt: str, user_prompt: str) -> str:
    """Call Gemini with JSON mode and temperature=0."""
    if not settings.GOOGLE_API_KEY:
        raise ValueError("Google API Key missing")

    logger.info(f"[AI-ENGINE] Calling Gemini ({settings.GEMINI_MODEL})...")
    model = genai.GenerativeModel(
        model_name=settings.GEMINI_MODEL,
        generation_config={
            "response_mime_type": "application/json",
            "temperature": 0,
        },
    )
    full_prompt = f"{system_prompt}\n\nUser Task:\n{user_prompt}"
    response = await asyncio.to_thread(model.generate_content, full_prompt)
    logger.info("[AI-ENGINE] ✓ Gemini call succeeded")
    return response.text


async def _hybrid_call(
    system_prompt: str,
    user_prompt: str,
    primary: str = "gemini",
) -> str:
    """
    Execute AI call with automatic failover.
    In 'hybrid' mode: tries primary first, then the other.
    """
    provider = settings.AI_PROVIDER

    if provider == "groq":
        callers = [("Groq", _call_groq)]
    elif provider == "gemini":
        callers = [("Gemini", _call_gemini)]
    else:  # hybrid
        if primary == "groq":
            callers = [("Groq", _call_groq), ("Gemini", _call_gemini)]
        else:
            callers = [("Gemini", _call_gemini), ("Groq", _call_groq)]

    last_error = None
    for name, caller in callers:
        try:
            return await caller(system_prompt, user_prompt)
        except Exception as e:
            last_error = e
            logger.warning(f"[AI-ENGINE] {name} failed: {str(e)[:200]}. Trying next...")

    raise GenerationUnavailable(f"All AI providers failed. Last error: {last_error}")


async def generate_text(prompt: str) -> str:
    """The generation function: prompt in, raw model text out (or raises)."""
    return await _hybrid_call(SYSTEM_PROMPT, prompt, primary="gemini")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# JSON RECOVERY
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def parse_json_object(raw_text: Optional[str]) -> Dict[str, Any]:
    """
    Extract and parse the first JSON object in an AI answer.
    Raises MalformedResponse with diagnostic info on failure.
    """
    if not raw_text or not raw_text.strip():
        raise MalformedResponse("Empty AI response received")

    fragment = extract_json_object(raw_text)
    if fragment is None:
        raise MalformedResponse("No JSON object found in AI response")

    try:
        data = json.loads(fragment)
    except json.JSONDecodeError as e:
        logger.error(f"JSON parse failed. Raw (first 500 chars): {raw_text[:500]}")
        raise MalformedResponse(f"AI returned invalid JSON: {e}")
    if not isinstance(data, dict):
        raise MalformedResponse("AI returned JSON that is not an object")
    return data


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SUMMARY
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _summary_prompt(text: str, title: str) -> str:
    return (
        "Analyze this educational document and create a comprehensive summary.\n\n"
        f"Title: {title}\n\n"
        f"Content:\n{text[:settings.SUMMARY_CHAR_BUDGET]}\n\n"
        "Provide:\n"
        "1. A concise summary (2-3 paragraphs)\n"
        "2. Key points (5-7 bullet points)\n"
        "3. Main concepts (3-5 concepts)\n"
        "4. Difficulty level (beginner/intermediate/advanced)\n\n"
        "Format as JSON:\n"
        "{\n"
        '  "summary": "...",\n'
        '  "key_points": ["...", "..."],\n'
        '  "concepts": ["...", "..."],\n'
        '  "difficulty": "beginner|intermediate|advanced"\n'
        "}\n"
    )


def _summary_unavailable(text: str, title: str) -> StudySummary:
    return StudySummary(
        summary=f"(AI unavailable) Summary for {title}:\n\n{text[:300]}",
        key_points=["Key concepts could not be generated (AI unavailable)"],
        concepts=["AI unavailable"],
    )


async def generate_summary(text: str, title: str, generate: Optional[GenerateFn]) -> StudySummary:
    """Summary with two fallbacks: raw answer text if unparsable, source excerpt if unavailable."""
    logger.info("[SUMMARY] Starting generation...")
    if generate is None:
        return _summary_unavailable(text, title)

    try:
        raw = await generate(_summary_prompt(text, title))
    except Exception as e:
        logger.warning(f"[SUMMARY] Generation unavailable: {str(e)[:200]}")
        return _summary_unavailable(text, title)

    try:
        summary = StudySummary(**parse_json_object(raw))
        logger.info(f"[SUMMARY] ✓ {len(summary.key_points)} key points")
        return summary
    except (MalformedResponse, ValidationError, TypeError) as e:
        logger.warning(f"[SUMMARY] Unparsable answer, using raw text: {str(e)[:200]}")

    if not raw or not raw.strip():
        return _summary_unavailable(text, title)
    return StudySummary(
        summary=raw.strip()[:500],
        key_points=["Key concepts extracted from document", "Important information highlighted"],
        concepts=["Main topic", "Secondary concepts"],
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# FLASHCARDS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _flashcards_prompt(text: str, title: str, count: int) -> str:
    return (
        f"Create {count} educational flashcards from this content.\n\n"
        f"Title: {title}\n"
        f"Content: {text[:settings.STUDY_CHAR_BUDGET]}\n\n"
        "Each flashcard has a clear, concise question on the front, a detailed answer "
        "on the back, a difficulty level and a category.\n\n"
        "Format as JSON:\n"
        "{\n"
        '  "flashcards": [\n'
        '    {"id": "1", "front": "Question text", "back": "Answer text", '
        '"difficulty": "easy|medium|hard", "category": "Category name"}\n'
        "  ]\n"
        "}\n"
    )


def fallback_flashcards(title: str) -> List[Flashcard]:
    return [
        Flashcard(id="1", front="What is the main topic of this document?", back=title,
                  difficulty="easy", category="General"),
        Flashcard(id="2", front="Name one key concept from the document.",
                  back="Key concept (AI unavailable)", difficulty="medium", category="Concepts"),
    ]


async def generate_flashcards(
    text: str,
    title: str,
    generate: Optional[GenerateFn],
    count: Optional[int] = None,
) -> List[Flashcard]:
    count = count or settings.FLASHCARD_COUNT
    logger.info(f"[FLASHCARDS] Starting: {count} cards")
    if generate is None:
        return fallback_flashcards(title)

    try:
        raw = await generate(_flashcards_prompt(text, title, count))
        cards = [Flashcard(**item) for item in parse_json_object(raw).get("flashcards", [])]
    except Exception as e:
        logger.warning(f"[FLASHCARDS] Using fallback: {str(e)[:200]}")
        return fallback_flashcards(title)

    if not cards:
        logger.warning("[FLASHCARDS] Empty card list, using fallback")
        return fallback_flashcards(title)
    logger.info(f"[FLASHCARDS] ✓ Generated {len(cards)} cards")
    return cards


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# QUIZ
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _quiz_prompt(text: str, title: str, count: int) -> str:
    return (
        f"Create {count} quiz questions from this educational content.\n\n"
        f"Title: {title}\n"
        f"Content: {text[:settings.STUDY_CHAR_BUDGET]}\n\n"
        "Each question has exactly 4 multiple choice options, the index (0-3) of the "
        "correct option, an explanation and a difficulty level.\n\n"
        "Format as JSON:\n"
        "{\n"
        '  "questions": [\n'
        "    {\n"
        '      "id": "1",\n'
        '      "question": "Question text?",\n'
        '      "options": ["Option A", "Option B", "Option C", "Option D"],\n'
        '      "correct_answer": 0,\n'
        '      "explanation": "Why this answer is correct",\n'
        '      "difficulty": "easy|medium|hard"\n'
        "    }\n"
        "  ]\n"
        "}\n"
    )


def fallback_quiz(title: str) -> List[QuizQuestion]:
    return [
        QuizQuestion(
            id="1",
            question="What is the main subject of this document?",
            options=[title, "General topic", "Unknown subject", "Multiple topics"],
            correct_answer=0,
            explanation="The main subject is the document title.",
            difficulty="easy",
        )
    ]


async def generate_quiz(
    text: str,
    title: str,
    generate: Optional[GenerateFn],
    count: Optional[int] = None,
) -> List[QuizQuestion]:
    count = count or settings.QUIZ_QUESTION_COUNT
    logger.info(f"[QUIZ] Starting: {count} questions")
    if generate is None:
        return fallback_quiz(title)

    try:
        raw = await generate(_quiz_prompt(text, title, count))
        questions = [QuizQuestion(**item) for item in parse_json_object(raw).get("questions", [])]
    except Exception as e:
        logger.warning(f"[QUIZ] Using fallback: {str(e)[:200]}")
        return fallback_quiz(title)

    if not questions:
        logger.warning("[QUIZ] Empty question list, using fallback")
        return fallback_quiz(title)
    logger.info(f"[QUIZ] ✓ Generated {len(questions)} questions")
    return questions


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SINGLE ENTRY POINT — CONCURRENT GENERATION
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

MIND_MAP_NOTICE = "AI-generated mind map was unavailable; showing a generic map."


async def process_document(
    text: str,
    title: str,
    generate: Optional[GenerateFn] = generate_text,
) -> StudyArtifacts:
    """
    Run summary + mind map + flashcards + quiz concurrently.
    One failing generator never cancels or discards the others.
    """
    logger.info(f"[PROCESS] Running 4 generators concurrently for '{title}'...")
    names = ("summary", "mind map", "flashcards", "quiz")
    results = await asyncio.gather(
        generate_summary(text, title, generate),
        normalize_response(text, title, generate),
        generate_flashcards(text, title, generate),
        generate_quiz(text, title, generate),
        return_exceptions=True,
    )

    notices: List[str] = []
    for name, result in zip(names, results):
        if isinstance(result, BaseException):
            logger.error(f"[PROCESS] {name} generation crashed: {result!r}")
            notices.append(f"The {name} could not be generated.")

    summary, normalized, flashcards, quiz = (
        None if isinstance(r, BaseException) else r for r in results
    )
    mind_map = None
    if normalized is not None:
        mind_map = normalized.mind_map
        if normalized.used_fallback:
            notices.append(MIND_MAP_NOTICE)

    logger.info(f"[PROCESS] ✓ Completed with {len(notices)} notice(s)")
    return StudyArtifacts(
        summary=summary,
        mind_map=mind_map,
        flashcards=flashcards,
        quiz=quiz,
        notices=notices,
    )
