import logging
import asyncio

import fitz  # PyMuPDF

from studymap.core.config import settings
from studymap.core.errors import UnsupportedInput

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = (".txt", ".md")
SUPPORTED_EXTENSIONS = (".pdf",) + TEXT_EXTENSIONS


async def extract_text_from_file(file_content: bytes, filename: str) -> dict:
    """
    Text extraction for uploaded documents: PyMuPDF for PDF, decoding for plain text.
    Returns: {"text": str, "success": bool}
    """
    filename = filename.lower()

    # ── Validate file size ────────────────────────────
    max_bytes = settings.MAX_FILE_SIZE_MB * 1024 * 1024
    if len(file_content) > max_bytes:
        raise ValueError(f"File exceeds {settings.MAX_FILE_SIZE_MB}MB limit.")

    if len(file_content) == 0:
        raise UnsupportedInput("File is empty.")

    if not filename.endswith(SUPPORTED_EXTENSIONS):
        raise UnsupportedInput("Unsupported format. Use PDF, TXT or MD.")

    try:
        if filename.endswith(".pdf"):
            text = await _extract_from_pdf(file_content)
        else:
            text = _decode_text(file_content)

        if not text or not text.strip():
            raise UnsupportedInput("No text found in file.")

        return {"text": text.strip(), "success": True}

    except ValueError:
        raise
    except Exception as e:
        logger.error(f"File processing failed for {filename}: {str(e)}")
        raise ValueError(f"Processing error: {str(e)}")


def _decode_text(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("latin-1")


async def _extract_from_pdf(content: bytes) -> str:
    """
    Extract text from PDF using PyMuPDF (fitz).
    Runs in a thread pool to avoid blocking the async event loop.
    """
    def _process_pdf(data: bytes) -> str:
        try:
            with fitz.open(stream=data, filetype="pdf") as doc:
                if doc.page_count == 0:
                    raise ValueError("PDF has no pages.")

                if doc.page_count > 200:
                    raise ValueError("PDF too large (>200 pages).")

                text_blocks = []
                for page in doc:
                    page_text = page.get_text("text")
                    if page_text.strip():
                        text_blocks.append(page_text)

                if not text_blocks:
                    raise ValueError("No text content found in PDF.")

                return "\n\n".join(text_blocks)
        except Exception as e:
            if isinstance(e, ValueError):
                raise
            raise ValueError(f"PDF extraction failed: {str(e)}")

    return await asyncio.to_thread(_process_pdf, content)


def count_pdf_pages(content: bytes) -> int:
    """Return page count using PyMuPDF (zero-cost, no text extraction)."""
    try:
        with fitz.open(stream=content, filetype="pdf") as doc:
            return doc.page_count
    except Exception:
        return 0
