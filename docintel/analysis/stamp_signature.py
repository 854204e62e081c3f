"""Stamp and signature detection with registry validation.

A single vision call reports stamp and signature presence, position,
signer and date. When the call or its JSON fails, a keyword/regex
heuristic over the extracted text takes over. Either way the stamp
registry is matched locally against the text, and that local match alone
decides whether the stamp counts as validated.
"""

import re
import time
from dataclasses import dataclass, replace
from typing import Any

from docintel.clients.vision_client import VisionClient
from docintel.errors import DocIntelError, Failure, MalformedResponse
from docintel.ocr.document import RawDocument
from docintel.ocr.pdf_handler import PDFHandler
from docintel.utils.json_response import clamp_confidence, extract_json_object
from docintel.utils.logger import get_logger

from .stamp_registry import StampRecord, StampRegistry, match_registry

logger = get_logger(__name__)

STAMP_KEYWORDS: tuple[str, ...] = (
    "stamp",
    "seal",
    "officer",
    "police",
    "commanding",
    "commissioner",
)
SIGNATURE_KEYWORDS: tuple[str, ...] = ("signature", "signed", "sd/", "sign")

SIGNER_NAME_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\bsd/?\s*-?\s*([a-z][a-z .]*)", re.IGNORECASE),
    re.compile(r"\bsigned\s+by\s+([a-z][a-z .]*)", re.IGNORECASE),
    re.compile(r"\b([a-z]+\s+[a-z]+),?\s+ips\b", re.IGNORECASE),
)
SIGNED_DATE_PATTERN = re.compile(r"\b(\d{1,2}[-/]\d{1,2}[-/](?:\d{4}|\d{2}))\b")

PLACEHOLDER_STAMP_BOX = (100, 100, 200, 100)
PLACEHOLDER_SIGNATURE_BOX = (300, 400, 150, 50)
HEURISTIC_PRESENT_CONFIDENCE = 0.6
HEURISTIC_ABSENT_CONFIDENCE = 0.3
DEFAULT_MODEL_CONFIDENCE = 0.7


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in image pixel coordinates."""

    x: float
    y: float
    width: float
    height: float


@dataclass
class DetectionResult:
    """Presence of a stamp or signature."""

    present: bool
    confidence: float
    bounding_box: BoundingBox | None = None


@dataclass
class StampSignatureResult:
    """Stamp/signature assessment of one document."""

    stamp: DetectionResult
    signature: DetectionResult
    validated: bool = False
    matched_stamp_name: str | None = None
    signer_name: str | None = None
    signed_date: str | None = None
    stamp_text: str | None = None
    model_claimed_match: str | None = None
    source: str = "default"
    elapsed_ms: float = 0.0

    @classmethod
    def absent(cls) -> "StampSignatureResult":
        """The fail-safe result: nothing detected, nothing validated."""
        return cls(
            stamp=DetectionResult(present=False, confidence=0.0),
            signature=DetectionResult(present=False, confidence=0.0),
        )


def _box_from(value: Any) -> BoundingBox | None:
    if not isinstance(value, list | tuple) or len(value) != 4:
        return None
    if not all(isinstance(v, int | float) and not isinstance(v, bool) for v in value):
        return None
    return BoundingBox(*(float(v) for v in value))


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in ("null", "none"):
        return None
    return text


def build_stamp_prompt(text: str, registry: tuple[StampRecord, ...]) -> str:
    """Build the vision prompt for stamp and signature analysis.

    Args:
        text: Extracted document text.
        registry: Known stamps enumerated for the model.

    Returns:
        Prompt text.
    """
    stamp_lines = "\n".join(
        f'{i}. "{record.name}"' for i, record in enumerate(registry, 1)
    )
    return f"""You are an expert document analyst specializing in detecting official stamps and signatures in police documents. Analyze this document image carefully.

OFFICIAL STAMP TYPES TO DETECT:
{stamp_lines}

EXTRACTED TEXT FROM DOCUMENT:
{text}

ANALYSIS TASKS:
1. STAMP DETECTION: Look for official stamps, seals, or circular/rectangular official markings
2. SIGNATURE DETECTION: Look for handwritten signatures (not typed names)
3. PERSON NAME EXTRACTION: Find the name of the signing authority
4. DATE EXTRACTION: Find any dates mentioned in stamps or near signatures
5. STAMP VALIDATION: Check if detected stamp text matches any official stamp from the list above

Respond in this EXACT JSON format:
{{
  "stamp_detected": true/false,
  "stamp_text": "exact text found in stamp or null",
  "stamp_coordinates": [x, y, width, height] or null,
  "signature_detected": true/false,
  "signature_coordinates": [x, y, width, height] or null,
  "person_name": "name of the signing person or null",
  "date_found": "date in DD/MM/YYYY or DD-MM-YYYY format or null",
  "official_stamp_match": true/false,
  "matched_stamp_type": "exact matching official stamp name or null",
  "confidence_score": 0.85
}}"""


def parse_stamp_reply(reply: str) -> StampSignatureResult:
    """Convert the vision model's reply into a result.

    Args:
        reply: Raw model reply.

    Returns:
        Result with ``source="model"``; validation fields left unset.

    Raises:
        MalformedResponse: If the reply is not JSON or lacks the
            detection flags.
    """
    data = extract_json_object(reply)
    if "stamp_detected" not in data or "signature_detected" not in data:
        raise MalformedResponse("Stamp reply lacks detection flags")

    confidence = clamp_confidence(
        data.get("confidence_score"), DEFAULT_MODEL_CONFIDENCE
    )
    stamp_present = data.get("stamp_detected") is True
    signature_present = data.get("signature_detected") is True
    claimed = (
        _optional_text(data.get("matched_stamp_type"))
        if data.get("official_stamp_match") is True
        else None
    )
    return StampSignatureResult(
        stamp=DetectionResult(
            present=stamp_present,
            confidence=confidence,
            bounding_box=_box_from(data.get("stamp_coordinates")),
        ),
        signature=DetectionResult(
            present=signature_present,
            confidence=confidence,
            bounding_box=_box_from(data.get("signature_coordinates")),
        ),
        signer_name=_optional_text(data.get("person_name")),
        signed_date=_optional_text(data.get("date_found")),
        stamp_text=_optional_text(data.get("stamp_text")),
        model_claimed_match=claimed,
        source="model",
    )


def heuristic_analysis(text: str) -> StampSignatureResult:
    """Detect stamps and signatures from keywords in the extracted text.

    Args:
        text: Extracted document text.

    Returns:
        Result with placeholder boxes and ``source="heuristic"``.
    """
    lowered = text.lower()
    has_stamp = any(kw in lowered for kw in STAMP_KEYWORDS)
    has_signature = any(kw in lowered for kw in SIGNATURE_KEYWORDS)

    signer_name = None
    for pattern in SIGNER_NAME_PATTERNS:
        match = pattern.search(text)
        if match and match.group(1).strip():
            signer_name = match.group(1).strip()
            break

    date_match = SIGNED_DATE_PATTERN.search(text)

    return StampSignatureResult(
        stamp=DetectionResult(
            present=has_stamp,
            confidence=(
                HEURISTIC_PRESENT_CONFIDENCE if has_stamp else HEURISTIC_ABSENT_CONFIDENCE
            ),
            bounding_box=BoundingBox(*PLACEHOLDER_STAMP_BOX) if has_stamp else None,
        ),
        signature=DetectionResult(
            present=has_signature,
            confidence=(
                HEURISTIC_PRESENT_CONFIDENCE
                if has_signature
                else HEURISTIC_ABSENT_CONFIDENCE
            ),
            bounding_box=(
                BoundingBox(*PLACEHOLDER_SIGNATURE_BOX) if has_signature else None
            ),
        ),
        signer_name=signer_name,
        signed_date=date_match.group(1) if date_match else None,
        source="heuristic",
    )


def apply_registry_validation(
    result: StampSignatureResult,
    text: str,
    registry: tuple[StampRecord, ...],
) -> StampSignatureResult:
    """Set ``validated`` and ``matched_stamp_name`` from the local registry.

    The model's own claim never sets these fields.

    Args:
        result: Model or heuristic result.
        text: Raw extracted text.
        registry: Known stamps in priority order.

    Returns:
        Copy of the result with validation fields filled in.
    """
    record = match_registry(text, registry)
    if record is None:
        if result.model_claimed_match:
            logger.info(
                "Model claimed stamp '%s' but no registry pattern matched",
                result.model_claimed_match,
            )
        return replace(result, validated=False, matched_stamp_name=None)
    return replace(result, validated=True, matched_stamp_name=record.name)


class StampSignatureAnalyzer:
    """Detects stamps and signatures and validates stamps against a registry.

    Args:
        client: Vision service client.
        registry: Immutable stamp registry loaded at startup. A plain tuple
            of records is tagged with the embedded registry version.
        num_predict: Token cap for the analysis reply.
        pdf_handler: Renderer producing the page images.
    """

    def __init__(
        self,
        client: VisionClient,
        registry: tuple[StampRecord, ...],
        num_predict: int = 1000,
        pdf_handler: PDFHandler | None = None,
    ) -> None:
        self.client = client
        if not isinstance(registry, StampRegistry):
            registry = StampRegistry(registry)
        self.registry = registry
        self.num_predict = num_predict
        self.pdf_handler = pdf_handler or PDFHandler()

    def analyze(self, doc: RawDocument, text: str) -> StampSignatureResult:
        """Assess stamps and signatures on a document. Never raises.

        Args:
            doc: Input document; its first page image is sent to the model.
            text: Text extracted from the document.

        Returns:
            Stamp/signature result; the fully absent result on internal error.
        """
        start_time = time.time()
        try:
            outcome = self._attempt_model(doc, text)
            if isinstance(outcome, Failure):
                logger.warning(
                    "Stamp analysis falling back to heuristics (%s): %s",
                    outcome.kind,
                    outcome.message,
                )
                outcome = heuristic_analysis(text)
            result = apply_registry_validation(outcome, text, self.registry)
        except Exception:
            logger.exception("Stamp analysis failed for %s", doc.filename)
            result = StampSignatureResult.absent()

        result.elapsed_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stamp %s, signature %s, validated=%s (%s)",
            "present" if result.stamp.present else "absent",
            "present" if result.signature.present else "absent",
            result.validated,
            result.source,
        )
        return result

    def _attempt_model(
        self, doc: RawDocument, text: str
    ) -> StampSignatureResult | Failure:
        try:
            image = self._first_page(doc)
            reply = self.client.generate(
                build_stamp_prompt(text, self.registry),
                [image],
                num_predict=self.num_predict,
            )
            return parse_stamp_reply(reply)
        except DocIntelError as exc:
            return Failure.from_error(exc)

    def _first_page(self, doc: RawDocument) -> bytes:
        return self.pdf_handler.document_images(doc)[0]

    def registry_names(self) -> list[tuple[str, str]]:
        """Return ``(id, name)`` pairs of the registered stamps."""
        return [(record.id, record.name) for record in self.registry]

    def check_health(self) -> bool:
        """Return True if the vision service is up and has the model."""
        return self.client.check_health()
