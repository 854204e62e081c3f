"""Document template catalog: typed field specs and value coercion.

Templates are caller-supplied configuration. They are loaded once (here
from YAML) into frozen models and shared read-only by the classifier and
the field extractor.
"""

import math
from enum import StrEnum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict

from docintel.utils.logger import get_logger

logger = get_logger(__name__)

_NULL_STRINGS = frozenset({"", "null", "none", "n/a"})


class FieldType(StrEnum):
    """Supported template field types."""

    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    DATE = "date"
    SELECT = "select"


class FieldSpec(BaseModel):
    """A typed, labeled field to populate from document text."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    type: FieldType = FieldType.TEXT
    required: bool = False
    options: tuple[str, ...] = ()

    def default_value(self) -> str | None:
        """Type-appropriate zero value for an unextracted field."""
        if self.type in (FieldType.NUMBER, FieldType.DATE):
            return None
        if self.type == FieldType.SELECT:
            return self.options[0] if self.options else ""
        return ""


class TemplateDefinition(BaseModel):
    """A named document schema."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: str
    fields: tuple[FieldSpec, ...] = ()

    @property
    def field_ids(self) -> list[str]:
        return [f.id for f in self.fields]

    def description(self) -> str:
        """Describe the template and its fields for a model prompt."""
        field_descriptions = ", ".join(
            f"{f.label} ({f.type.value}{', required' if f.required else ''})"
            for f in self.fields
        )
        return f"{self.category} document with fields: {field_descriptions}"


def _is_null(value: Any) -> bool:
    return value is None or (
        isinstance(value, str) and value.strip().lower() in _NULL_STRINGS
    )


def _to_number(value: Any) -> int | float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    cleaned = str(value).strip().replace(",", "")
    try:
        return int(cleaned)
    except ValueError:
        pass
    try:
        number = float(cleaned)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def coerce_value(spec: FieldSpec, value: Any) -> Any:
    """Coerce an extracted value to the field's type.

    Text fields become strings, numbers are parsed (``None`` when
    unparseable), dates stay strings or ``None``, and select values must
    name one of the options (matched case-insensitively).

    Args:
        spec: Field specification.
        value: Extracted value of any type.

    Returns:
        A value conforming to ``spec.type``.
    """
    if _is_null(value):
        return spec.default_value()

    if spec.type in (FieldType.TEXT, FieldType.TEXTAREA):
        return str(value).strip()
    if spec.type == FieldType.NUMBER:
        return _to_number(value)
    if spec.type == FieldType.DATE:
        return str(value).strip()

    text = str(value).strip()
    if not spec.options:
        return text
    for option in spec.options:
        if option.lower() == text.lower():
            return option
    return spec.default_value()


def complete_fields(
    extracted: dict[str, Any], template: TemplateDefinition
) -> dict[str, Any]:
    """Return exactly one type-conforming value per template field.

    Missing fields get their type default; keys that are not template
    fields are dropped.

    Args:
        extracted: Field values keyed by field id, possibly partial.
        template: Template whose fields must all be present.

    Returns:
        Complete field map in template field order.
    """
    return {
        spec.id: coerce_value(spec, extracted.get(spec.id)) for spec in template.fields
    }


def load_catalog(path: Path) -> tuple[TemplateDefinition, ...]:
    """Load template definitions from a YAML file.

    The file holds a ``templates`` list; list order is kept because the
    keyword fallback breaks ties by catalog position.

    Args:
        path: Path to the templates YAML file.

    Returns:
        Immutable tuple of templates; empty when the file does not exist.
    """
    if not path.exists():
        logger.warning("No template catalog at %s", path)
        return ()

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    catalog = tuple(
        TemplateDefinition(**entry) for entry in data.get("templates", [])
    )
    logger.info("Loaded %d templates from %s", len(catalog), path)
    return catalog
