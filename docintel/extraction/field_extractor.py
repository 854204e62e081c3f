"""Template field extraction with a regex fallback.

The chat model fills the template's fields from the document text. Its
output is always completed against the template so every field is present
with a type-conforming value. When the model path fails, a small set of
labeled regex patterns fills what it can and leaves the rest at their
type defaults.
"""

import json
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from docintel.clients.chat_client import ChatClient
from docintel.errors import DocIntelError, Failure, MalformedResponse
from docintel.utils.config import FieldExtractionConfig
from docintel.utils.json_response import clamp_confidence, extract_json_object
from docintel.utils.logger import get_logger

from .templates import TemplateDefinition, coerce_value, complete_fields

logger = get_logger(__name__)

FALLBACK_CONFIDENCE = 0.6
DEFAULT_MODEL_CONFIDENCE = 0.7

# Key -> pattern; a match goes to the first field whose label or id
# contains the key.
_FALLBACK_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    (
        "name",
        re.compile(
            r"(?:name|officer|recipient|श्री|sri)\s*:?\s*([a-z][a-z .]*)",
            re.IGNORECASE,
        ),
    ),
    ("date", re.compile(r"(\d{1,2}[-/]\d{1,2}[-/]\d{2,4})")),
    (
        "station",
        re.compile(r"(?:station|police|थाना)\s*:?\s*([a-z][a-z .]*)", re.IGNORECASE),
    ),
    ("rank", re.compile(r"(?:rank|पद)\s*:?\s*([a-z][a-z .]*)", re.IGNORECASE)),
]

SYSTEM_PROMPT = (
    "You are an expert data extraction specialist for Andhra Pradesh Police "
    "Department documents. Extract information precisely from police "
    "documents including leave letters, punishment orders, awards, and "
    "official correspondence. Focus on accuracy and proper field mapping. "
    "Respond only with valid JSON. Do not include any explanatory text "
    "outside the JSON."
)


class MappingSource(StrEnum):
    """How a field value was found."""

    DIRECT_MATCH = "direct_match"
    PATTERN_MATCH = "pattern_match"
    CONTEXT_MATCH = "context_match"
    AI_INFERENCE = "ai_inference"


@dataclass
class FieldMapping:
    """Provenance of one extracted field value."""

    field_id: str
    field_label: str
    extracted_value: Any
    confidence: float
    source: MappingSource


@dataclass
class FieldExtractionResult:
    """Complete field map for a document and template."""

    template_id: str
    confidence: float
    reasoning: str
    fields: dict[str, Any]
    field_details: list[FieldMapping] = field(default_factory=list)
    source: str = "model"


def pattern_fallback(text: str, template: TemplateDefinition) -> FieldExtractionResult:
    """Fill template fields with the fixed labeled regex patterns.

    Args:
        text: Full document text.
        template: Template whose fields are filled.

    Returns:
        All fields present (defaults where nothing matched), confidence 0.6.
    """
    fields = complete_fields({}, template)
    details: list[FieldMapping] = []

    for key, pattern in _FALLBACK_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        spec = next(
            (
                f
                for f in template.fields
                if key in f.label.lower() or key in f.id.lower()
            ),
            None,
        )
        if spec is None:
            continue
        value = coerce_value(spec, match.group(1).strip())
        fields[spec.id] = value
        details.append(
            FieldMapping(
                field_id=spec.id,
                field_label=spec.label,
                extracted_value=value,
                confidence=FALLBACK_CONFIDENCE,
                source=MappingSource.PATTERN_MATCH,
            )
        )

    return FieldExtractionResult(
        template_id=template.id,
        confidence=FALLBACK_CONFIDENCE,
        reasoning="Fallback field extraction using pattern matching",
        fields=fields,
        field_details=details,
        source="fallback",
    )


def build_extraction_prompt(text: str, template: TemplateDefinition) -> str:
    """Build the user prompt describing the template's fields."""
    template_fields = [
        {
            "id": f.id,
            "label": f.label,
            "type": f.type.value,
            "required": f.required,
            "options": list(f.options),
        }
        for f in template.fields
    ]
    field_lines = ",\n    ".join(
        f'"{f.id}": "extracted value or null"' for f in template.fields
    )
    return f"""You are an expert data extraction specialist for Andhra Pradesh Police Department documents. Extract data from the document text using the specified template with extreme precision.

DOCUMENT TEXT:
{text}

TARGET TEMPLATE: {template.name}
CATEGORY: {template.category}

TEMPLATE FIELDS TO EXTRACT:
{json.dumps(template_fields, indent=2, ensure_ascii=False)}

EXTRACTION INSTRUCTIONS:
1. For each field, extract the most relevant information from the document text
2. Match field labels with document content (e.g., "Officer Name" should extract actual officer names)
3. For dates: Extract in DD/MM/YYYY or DD-MM-YYYY format if found
4. For names: Extract full names of persons, officers, or authorities
5. For stations/departments: Extract official names of police stations or departments
6. For select fields: Choose the option that best matches the document content
7. If no relevant information is found for a field, use null

Respond with valid JSON only:
{{
  "documentType": "{template.name}",
  "confidence": 0.85,
  "reasoning": "explanation of the extraction and field matching",
  "extractedFields": {{
    {field_lines}
  }},
  "fieldMappingDetails": [
    {{
      "fieldId": "field id",
      "fieldLabel": "field label",
      "extractedValue": "value",
      "confidence": 0.8,
      "source": "direct_match | pattern_match | context_match | ai_inference"
    }}
  ]
}}"""


def _parse_mapping_details(
    raw: Any, fields: dict[str, Any], template: TemplateDefinition
) -> list[FieldMapping]:
    if not isinstance(raw, list):
        return []
    labels = {f.id: f.label for f in template.fields}
    details: list[FieldMapping] = []
    for item in raw:
        field_id = item.get("fieldId") if isinstance(item, dict) else None
        if not isinstance(field_id, str) or field_id not in labels:
            continue
        try:
            source = MappingSource(item.get("source"))
        except ValueError:
            source = MappingSource.AI_INFERENCE
        details.append(
            FieldMapping(
                field_id=field_id,
                field_label=labels[field_id],
                extracted_value=fields[field_id],
                confidence=clamp_confidence(
                    item.get("confidence"), DEFAULT_MODEL_CONFIDENCE
                ),
                source=source,
            )
        )
    return details


class FieldExtractor:
    """Extracts a complete, typed field map for a chosen template.

    Args:
        client: Chat-completion client.
        config: Field extraction configuration.
    """

    def __init__(self, client: ChatClient, config: FieldExtractionConfig) -> None:
        self.client = client
        self.config = config

    def extract_fields(
        self, text: str, template: TemplateDefinition
    ) -> FieldExtractionResult:
        """Extract every field of a template from document text.

        Args:
            text: Extracted document text.
            template: Template chosen by classification.

        Returns:
            Field map containing exactly the template's field ids.
        """
        if not text.strip():
            logger.info("Empty text, extracting fields with pattern fallback")
            return pattern_fallback(text, template)

        outcome = self._attempt_model(text, template)
        if isinstance(outcome, Failure):
            logger.warning(
                "Field extraction falling back (%s): %s",
                outcome.kind,
                outcome.message,
            )
            outcome = pattern_fallback(text, template)

        filled = sum(1 for v in outcome.fields.values() if v not in ("", None))
        logger.info(
            "Extracted %d/%d fields for '%s' (confidence=%.2f, %s)",
            filled,
            len(outcome.fields),
            template.id,
            outcome.confidence,
            outcome.source,
        )
        return outcome

    def _attempt_model(
        self, text: str, template: TemplateDefinition
    ) -> FieldExtractionResult | Failure:
        prefix = text[: self.config.extraction_prefix_chars]
        try:
            reply = self.client.complete(
                SYSTEM_PROMPT,
                build_extraction_prompt(prefix, template),
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
            data = extract_json_object(reply)
            extracted = data.get("extractedFields")
            if not isinstance(extracted, dict):
                raise MalformedResponse("Reply has no extractedFields object")
        except DocIntelError as exc:
            return Failure.from_error(exc)

        fields = complete_fields(extracted, template)
        reasoning = data.get("reasoning")
        return FieldExtractionResult(
            template_id=template.id,
            confidence=clamp_confidence(
                data.get("confidence"), DEFAULT_MODEL_CONFIDENCE
            ),
            reasoning=(
                str(reasoning) if reasoning else "Automated field extraction completed"
            ),
            fields=fields,
            field_details=_parse_mapping_details(
                data.get("fieldMappingDetails"), fields, template
            ),
            source="model",
        )

    def check_health(self) -> bool:
        """Return True if the chat service answers."""
        return self.client.check_health()
