"""Pydantic response schemas for the FastAPI endpoints."""

from typing import Any

from pydantic import BaseModel, ConfigDict


class PageResponse(BaseModel):
    """Text extracted from one page."""

    page_number: int
    width: int
    height: int
    text: str
    confidence: float


class TextExtractionResponse(BaseModel):
    """Stage 1 output."""

    model_config = ConfigDict(protected_namespaces=())

    text: str
    confidence: float
    model_id: str
    elapsed_ms: float
    per_page: list[PageResponse]


class BoundingBoxResponse(BaseModel):
    x: float
    y: float
    width: float
    height: float


class DetectionResponse(BaseModel):
    """Presence of a stamp or signature."""

    present: bool
    confidence: float
    bounding_box: BoundingBoxResponse | None = None


class StampSignatureResponse(BaseModel):
    """Stage 2 output."""

    stamp: DetectionResponse
    signature: DetectionResponse
    validated: bool
    matched_stamp_name: str | None = None
    signer_name: str | None = None
    signed_date: str | None = None
    stamp_text: str | None = None
    model_claimed_match: str | None = None
    source: str
    elapsed_ms: float


class FieldInfo(BaseModel):
    """A template field definition."""

    id: str
    label: str
    type: str
    required: bool
    options: list[str] = []


class TemplateInfo(BaseModel):
    """A document template from the catalog."""

    id: str
    name: str
    category: str
    fields: list[FieldInfo]


class ClassificationResponse(BaseModel):
    """Stage 3 output."""

    template: TemplateInfo
    confidence: float
    reasoning: str
    source: str


class FieldMappingResponse(BaseModel):
    field_id: str
    field_label: str
    extracted_value: Any = None
    confidence: float
    source: str


class FieldExtractionResponse(BaseModel):
    """Stage 4 output."""

    template_id: str
    confidence: float
    reasoning: str
    fields: dict[str, Any]
    field_details: list[FieldMappingResponse]
    source: str


class AnalysisResponse(BaseModel):
    """Response schema for a document analysis request."""

    success: bool = True
    document_id: str
    filename: str
    media_type: str
    size: int
    extraction: TextExtractionResponse
    stamp_signature: StampSignatureResponse
    classification: ClassificationResponse
    fields: FieldExtractionResponse
    elapsed_ms: float
    extraction_error: str | None = None


class BatchItemResponse(BaseModel):
    """Response schema for a single item in a batch analysis."""

    filename: str
    result: AnalysisResponse | None = None
    error: str | None = None


class BatchAnalysisResponse(BaseModel):
    """Response schema for batch analysis of multiple documents."""

    success: bool
    total_documents: int
    successful: int
    failed: int
    results: list[BatchItemResponse]


class TemplatesResponse(BaseModel):
    """Response schema listing the template catalog."""

    templates: list[TemplateInfo]


class StampInfo(BaseModel):
    id: str
    name: str
    keywords: list[str]


class StampsResponse(BaseModel):
    """Response schema listing the stamp registry."""

    version: str
    stamps: list[StampInfo]


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    vision_available: bool
    chat_available: bool
