"""Template classification for known document formats.

Asks the chat model to pick the best template for a document, and falls
back to keyword overlap between the text and each template's vocabulary
when the model cannot be reached, replies badly, or names an unknown
template.
"""

import json
from collections.abc import Sequence
from dataclasses import dataclass

from docintel.clients.chat_client import ChatClient
from docintel.errors import DocIntelError, Failure, InvalidReference
from docintel.utils.config import ClassifierConfig
from docintel.utils.json_response import clamp_confidence, extract_json_object
from docintel.utils.logger import get_logger

from .templates import TemplateDefinition

logger = get_logger(__name__)

TEMPLATE_SYNONYMS: dict[str, tuple[str, ...]] = {
    "transfer": ("transfer", "posting", "station", "order"),
    "award": ("award", "certificate", "recognition", "medal"),
    "complaint": ("complaint", "grievance", "disciplinary"),
}

FALLBACK_BASE_CONFIDENCE = 0.5
FALLBACK_MAX_CONFIDENCE = 0.8
FALLBACK_PER_MATCH = 0.1
DEFAULT_MODEL_CONFIDENCE = 0.7

SYSTEM_PROMPT = (
    "You are an expert document classifier for Andhra Pradesh Police "
    "Department. Analyze police documents and classify them accurately based "
    "on content, purpose, and official indicators. Respond only with valid "
    "JSON. Do not include any explanatory text outside the JSON."
)


@dataclass
class ClassificationResult:
    """Template chosen for a document."""

    template: TemplateDefinition
    confidence: float
    reasoning: str
    source: str = "model"


def template_keywords(template: TemplateDefinition) -> list[str]:
    """Build the lowercase keyword vocabulary of a template.

    Args:
        template: Template definition.

    Returns:
        Name words, category, field-label words and curated synonyms,
        deduplicated in first-seen order.
    """
    keywords: list[str] = []
    keywords.extend(template.name.lower().split())
    keywords.append(template.category.lower())
    for spec in template.fields:
        keywords.extend(spec.label.lower().split())
    keywords.extend(TEMPLATE_SYNONYMS.get(template.id, ()))
    return list(dict.fromkeys(kw for kw in keywords if kw))


def keyword_fallback(
    text: str, catalog: Sequence[TemplateDefinition]
) -> ClassificationResult:
    """Pick the first template whose vocabulary appears in the text.

    Args:
        text: Document text.
        catalog: Non-empty template catalog; order breaks ties.

    Returns:
        First template with at least one keyword hit, at
        ``min(0.8, 0.5 + 0.1 * hits)``; otherwise the first template at 0.5.
    """
    lowered = text.lower()
    for template in catalog:
        hits = sum(1 for kw in template_keywords(template) if kw in lowered)
        if hits > 0:
            confidence = min(
                FALLBACK_MAX_CONFIDENCE,
                FALLBACK_BASE_CONFIDENCE + FALLBACK_PER_MATCH * hits,
            )
            return ClassificationResult(
                template=template,
                confidence=round(confidence, 4),
                reasoning=(
                    f"Fallback keyword matching: {hits} keyword(s) of "
                    f"'{template.name}' found in document text"
                ),
                source="fallback",
            )

    return ClassificationResult(
        template=catalog[0],
        confidence=FALLBACK_BASE_CONFIDENCE,
        reasoning="Fallback keyword matching found no matches; using first template",
        source="fallback",
    )


def build_classification_prompt(
    text: str, catalog: Sequence[TemplateDefinition]
) -> str:
    """Build the user prompt listing every template in the catalog."""
    descriptions = [
        {
            "id": t.id,
            "name": t.name,
            "category": t.category,
            "description": t.description(),
        }
        for t in catalog
    ]
    return f"""You are an expert document classifier and template matcher for Andhra Pradesh Police Department documents. Your task is to analyze the document text and find the BEST matching template from the provided list.

DOCUMENT TEXT TO ANALYZE:
{text}

AVAILABLE TEMPLATES:
{json.dumps(descriptions, indent=2)}

CLASSIFICATION INSTRUCTIONS:
1. Identify the document type, official stamps or seals, department or office names, and the kinds of fields present.
2. Match against the template categories and the fields each template requires.
3. Assign confidence: 0.9+ for a clear match, 0.7-0.9 for a good match, 0.5-0.7 for a partial match, below 0.5 when unsure.

Respond with valid JSON only:
{{
  "bestTemplateId": "exact template id from the list above",
  "confidence": 0.85,
  "reasoning": "why this template was chosen, citing specific text elements"
}}"""


class TemplateClassifier:
    """Selects the best-matching template for a document's text.

    Args:
        client: Chat-completion client.
        config: Classifier configuration.
    """

    def __init__(self, client: ChatClient, config: ClassifierConfig) -> None:
        self.client = client
        self.config = config

    def classify(
        self,
        text: str,
        catalog: Sequence[TemplateDefinition],
    ) -> ClassificationResult:
        """Classify text against a template catalog. Never fails on model errors.

        Args:
            text: Extracted document text.
            catalog: Templates to choose from.

        Returns:
            Model classification, or the keyword fallback.

        Raises:
            ValueError: If the catalog is empty.
        """
        if not catalog:
            raise ValueError("Template catalog is empty")

        if not text.strip():
            logger.info("Empty text, classifying with keyword fallback")
            return keyword_fallback(text, catalog)

        outcome = self._attempt_model(text, catalog)
        if isinstance(outcome, Failure):
            logger.warning(
                "Template classification falling back (%s): %s",
                outcome.kind,
                outcome.message,
            )
            outcome = keyword_fallback(text, catalog)

        logger.info(
            "Classified as '%s' (confidence=%.2f, %s)",
            outcome.template.id,
            outcome.confidence,
            outcome.source,
        )
        return outcome

    def _attempt_model(
        self,
        text: str,
        catalog: Sequence[TemplateDefinition],
    ) -> ClassificationResult | Failure:
        prefix = text[: self.config.classification_prefix_chars]
        try:
            reply = self.client.complete(
                SYSTEM_PROMPT,
                build_classification_prompt(prefix, catalog),
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
            data = extract_json_object(reply)
            template_id = data.get("bestTemplateId")
            template = next((t for t in catalog if t.id == template_id), None)
            if template is None:
                raise InvalidReference(f"Unknown template id: {template_id!r}")
        except DocIntelError as exc:
            return Failure.from_error(exc)

        reasoning = data.get("reasoning")
        return ClassificationResult(
            template=template,
            confidence=clamp_confidence(
                data.get("confidence"), DEFAULT_MODEL_CONFIDENCE
            ),
            reasoning=str(reasoning) if reasoning else "Model classification",
            source="model",
        )

    def check_health(self) -> bool:
        """Return True if the chat service answers."""
        return self.client.check_health()
