import logging
from typing import Optional

from studymap.ai_engine import generate_text, process_document
from studymap.mindmap.normalizer import GenerateFn
from studymap.schemas.study import StudyArtifacts

logger = logging.getLogger(__name__)


class StudySession:
    """
    One viewing session over one document.

    There is no cancellation signal: if ``close()`` runs while generation is
    still in flight, the result is dropped when it arrives. No retry, no requeue.
    """

    def __init__(self, title: str, generate: Optional[GenerateFn] = generate_text):
        self.title = title
        self.generate = generate
        self.closed = False
        self.artifacts: Optional[StudyArtifacts] = None

    async def run(self, text: str) -> Optional[StudyArtifacts]:
        artifacts = await process_document(text, self.title, self.generate)
        if self.closed:
            logger.info(f"[SESSION] '{self.title}' closed before generation finished; result discarded")
            return None
        self.artifacts = artifacts
        return artifacts

    def close(self) -> None:
        self.closed = True
        self.artifacts = None
