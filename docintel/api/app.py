"""FastAPI application for the Document Intelligence API.

Provides REST endpoints for single and batch document analysis, the
template catalog, the stamp registry, and health checks.
"""

import uuid
from functools import lru_cache
from typing import Annotated

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware

from docintel.ocr.document import SUPPORTED_MEDIA_TYPES, RawDocument
from docintel.pipeline import DocumentPipeline, PipelineResult
from docintel.utils.config import load_config
from docintel.utils.logger import get_logger

from .schemas import (
    AnalysisResponse,
    BatchAnalysisResponse,
    BatchItemResponse,
    HealthResponse,
    StampInfo,
    StampsResponse,
    TemplateInfo,
    TemplatesResponse,
)

logger = get_logger(__name__)

API_VERSION = "1.0.0"

app = FastAPI(
    title="Document Intelligence API",
    description=(
        "Extract text, stamps, signatures and template fields from "
        "official documents"
    ),
    version=API_VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def _get_pipeline() -> DocumentPipeline:
    """Build the shared pipeline on first use.

    Returns:
        Pipeline with the catalog and registry loaded once.
    """
    config = load_config()
    return DocumentPipeline.from_config(config)


def _to_response(result: PipelineResult) -> AnalysisResponse:
    return AnalysisResponse(document_id=str(uuid.uuid4()), **result.to_dict())


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return reachability of the inference services."""
    pipeline = _get_pipeline()
    health = await run_in_threadpool(pipeline.check_health)
    return HealthResponse(
        status="healthy" if all(health.values()) else "degraded",
        version=API_VERSION,
        vision_available=health["vision"],
        chat_available=health["chat"],
    )


@app.post("/analyze", response_model=AnalysisResponse)
async def analyze_document(
    file: Annotated[UploadFile, File(...)],
) -> AnalysisResponse:
    """Run the full pipeline on an uploaded document.

    Args:
        file: Uploaded document file (PNG, JPEG, TIFF, WEBP, or PDF).

    Returns:
        Text, stamp/signature assessment, template and fields.
    """
    content = await file.read()
    doc = RawDocument.from_bytes(
        content,
        filename=file.filename or "document",
        media_type=file.content_type,
    )
    if doc.media_type not in SUPPORTED_MEDIA_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type: {doc.media_type}",
        )

    try:
        pipeline = _get_pipeline()
        result = await run_in_threadpool(pipeline.process, doc)
    except Exception as exc:
        logger.error("Analysis failed for %s: %s", doc.filename, exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return _to_response(result)


@app.post("/analyze/batch", response_model=BatchAnalysisResponse)
async def analyze_batch(
    files: Annotated[list[UploadFile], File(...)],
) -> BatchAnalysisResponse:
    """Run the pipeline on multiple uploaded documents.

    Args:
        files: List of uploaded document files.

    Returns:
        Batch results with per-file outcomes.
    """
    results: list[BatchItemResponse] = []
    successful = 0

    for file in files:
        filename = file.filename or "unknown"
        try:
            result = await analyze_document(file)
            results.append(BatchItemResponse(filename=filename, result=result))
            successful += 1
        except HTTPException as exc:
            results.append(BatchItemResponse(filename=filename, error=exc.detail))

    return BatchAnalysisResponse(
        success=successful > 0,
        total_documents=len(files),
        successful=successful,
        failed=len(files) - successful,
        results=results,
    )


@app.get("/templates", response_model=TemplatesResponse)
async def list_templates() -> TemplatesResponse:
    """List the document templates available for classification."""
    pipeline = _get_pipeline()
    return TemplatesResponse(
        templates=[
            TemplateInfo(**template.model_dump(mode="json"))
            for template in pipeline.catalog
        ]
    )


@app.get("/stamps", response_model=StampsResponse)
async def list_stamps() -> StampsResponse:
    """List the official stamps used for validation."""
    pipeline = _get_pipeline()
    return StampsResponse(
        version=pipeline.stamp_analyzer.registry.version,
        stamps=[
            StampInfo(id=record.id, name=record.name, keywords=list(record.keywords))
            for record in pipeline.stamp_analyzer.registry
        ],
    )
