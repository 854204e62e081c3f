"""Vision-model text extraction with locally scored confidence.

Sends each page image to the vision service with a fixed transcription
instruction and scores the returned text locally with a deterministic
length and content heuristic.
"""

import re
import time
from dataclasses import dataclass, field

from docintel.clients.vision_client import VisionClient
from docintel.errors import (
    InferenceMalformed,
    InferenceUnavailable,
    MalformedResponse,
    TransportFailure,
)
from docintel.utils.logger import get_logger

from .document import RawDocument, image_size
from .pdf_handler import PDFHandler

logger = get_logger(__name__)

EXTRACTION_PROMPT = (
    "Extract all text content from this image. Maintain the original "
    "structure and formatting as much as possible."
)

DOMAIN_KEYWORDS: tuple[str, ...] = (
    "date",
    "name",
    "address",
    "phone",
    "email",
    "officer",
    "department",
    "police",
)

_DIGIT_RE = re.compile(r"\d")
_LETTER_RE = re.compile(r"[a-zA-Z]")
_PUNCTUATION_RE = re.compile(r"[.,;:!?]")


@dataclass
class PageResult:
    """Text extracted from a single document page."""

    page_number: int
    width: int
    height: int
    text: str
    confidence: float


@dataclass
class ExtractionResult:
    """Text extraction result for a whole document."""

    text: str
    confidence: float
    model_id: str
    elapsed_ms: float = 0.0
    per_page: list[PageResult] = field(default_factory=list)

    @classmethod
    def empty(cls, model_id: str = "", elapsed_ms: float = 0.0) -> "ExtractionResult":
        """Result used when extraction failed: no text, zero confidence."""
        return cls(text="", confidence=0.0, model_id=model_id, elapsed_ms=elapsed_ms)


def score_text_confidence(text: str) -> float:
    """Score extracted text with the fixed length/content heuristic.

    Starts at 0.7 and adjusts for length, mixed digits and letters,
    punctuation, and each domain keyword present.

    Args:
        text: Trimmed extracted text.

    Returns:
        Confidence between 0.0 and 1.0; exactly 0.0 for empty text.
    """
    if not text:
        return 0.0

    confidence = 0.7
    if len(text) > 100:
        confidence += 0.1
    if len(text) > 500:
        confidence += 0.1
    if len(text) < 20:
        confidence -= 0.2

    if _DIGIT_RE.search(text) and _LETTER_RE.search(text):
        confidence += 0.05
    if _PUNCTUATION_RE.search(text):
        confidence += 0.05

    lowered = text.lower()
    keyword_matches = sum(1 for kw in DOMAIN_KEYWORDS if kw in lowered)
    confidence += keyword_matches * 0.02

    return min(max(confidence, 0.0), 1.0)


class TextExtractor:
    """Converts document images into raw text with the vision service.

    Args:
        client: Vision service client.
        pdf_handler: Renderer producing the page images.
    """

    def __init__(
        self, client: VisionClient, pdf_handler: PDFHandler | None = None
    ) -> None:
        self.client = client
        self.pdf_handler = pdf_handler or PDFHandler()

    def extract(self, doc: RawDocument) -> ExtractionResult:
        """Extract the text of every page of a document.

        Args:
            doc: Input document (image or PDF).

        Returns:
            Combined text with per-page results and a derived confidence.

        Raises:
            InferenceUnavailable: If the vision service cannot be reached.
            InferenceMalformed: If a reply carries no text.
            UnreadableDocument: If a PDF cannot be rendered.
        """
        start_time = time.time()
        logger.info(
            "Extracting text from %s (%s, %d bytes)",
            doc.filename,
            doc.media_type,
            doc.size,
        )

        pages: list[PageResult] = []
        for number, image in enumerate(self.pdf_handler.document_images(doc), 1):
            text = self._transcribe(image)
            width, height = image_size(image)
            pages.append(
                PageResult(
                    page_number=number,
                    width=width,
                    height=height,
                    text=text,
                    confidence=score_text_confidence(text),
                )
            )

        combined = "\n\n".join(p.text for p in pages if p.text).strip()
        confidence = score_text_confidence(combined)
        elapsed_ms = (time.time() - start_time) * 1000

        logger.info(
            "Extracted %d characters from %d page(s) (confidence=%.2f)",
            len(combined),
            len(pages),
            confidence,
        )
        return ExtractionResult(
            text=combined,
            confidence=confidence,
            model_id=self.client.model,
            elapsed_ms=elapsed_ms,
            per_page=pages,
        )

    def _transcribe(self, image: bytes) -> str:
        try:
            reply = self.client.generate(EXTRACTION_PROMPT, [image])
        except TransportFailure as exc:
            raise InferenceUnavailable(exc.message) from exc
        except MalformedResponse as exc:
            raise InferenceMalformed(exc.message) from exc
        return reply.strip()

    def check_health(self) -> bool:
        """Return True if the vision service is up and has the model."""
        return self.client.check_health()

    def ensure_model_available(self) -> bool:
        """Pull the vision model if the health check does not find it.

        Returns:
            True if the model is available after at most one pull.
        """
        if self.check_health():
            return True
        logger.info("Vision model %s not found, attempting to pull", self.client.model)
        if not self.client.pull_model():
            return False
        return self.check_health()
