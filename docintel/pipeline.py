"""Document intelligence pipeline.

Runs the four stages for one document: text extraction, stamp/signature
analysis, template classification and field extraction. Stages 2-4 never
fail on model errors; a failed text extraction is carried forward as empty
text with zero confidence.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import httpx

from docintel.analysis.stamp_registry import StampRecord, load_stamp_registry
from docintel.analysis.stamp_signature import (
    StampSignatureAnalyzer,
    StampSignatureResult,
)
from docintel.clients.chat_client import ChatClient
from docintel.clients.vision_client import VisionClient
from docintel.errors import DocIntelError
from docintel.extraction.field_extractor import FieldExtractionResult, FieldExtractor
from docintel.extraction.template_classifier import (
    ClassificationResult,
    TemplateClassifier,
)
from docintel.extraction.templates import TemplateDefinition, load_catalog
from docintel.ocr.document import RawDocument
from docintel.ocr.pdf_handler import PDFHandler
from docintel.ocr.text_extractor import ExtractionResult, TextExtractor
from docintel.utils.config import AppConfig
from docintel.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class PipelineResult:
    """Everything the pipeline produced for one document."""

    filename: str
    media_type: str
    size: int
    extraction: ExtractionResult
    stamp_signature: StampSignatureResult
    classification: ClassificationResult
    fields: FieldExtractionResult
    elapsed_ms: float = 0.0
    extraction_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to plain JSON-serializable data."""
        data = asdict(self)
        data["classification"]["template"] = self.classification.template.model_dump(
            mode="json"
        )
        return data


class DocumentPipeline:
    """Composes the four stages over a shared template catalog.

    Args:
        text_extractor: Stage 1, document image to text.
        stamp_analyzer: Stage 2, stamp and signature assessment.
        classifier: Stage 3, template selection.
        field_extractor: Stage 4, template field extraction.
        catalog: Templates to classify against, loaded once.

    Raises:
        ValueError: If the catalog is empty.
    """

    def __init__(
        self,
        text_extractor: TextExtractor,
        stamp_analyzer: StampSignatureAnalyzer,
        classifier: TemplateClassifier,
        field_extractor: FieldExtractor,
        catalog: tuple[TemplateDefinition, ...],
    ) -> None:
        if not catalog:
            raise ValueError("Template catalog is empty")
        self.text_extractor = text_extractor
        self.stamp_analyzer = stamp_analyzer
        self.classifier = classifier
        self.field_extractor = field_extractor
        self.catalog = tuple(catalog)

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        vision_transport: httpx.BaseTransport | None = None,
        chat_transport: httpx.BaseTransport | None = None,
        catalog: tuple[TemplateDefinition, ...] | None = None,
        registry: tuple[StampRecord, ...] | None = None,
    ) -> "DocumentPipeline":
        """Build a pipeline and its clients from configuration.

        Args:
            config: Application configuration.
            vision_transport: Optional transport for the vision client.
            chat_transport: Optional transport for the chat client.
            catalog: Templates to use instead of the configured file.
            registry: Stamp records to use instead of the configured ones.

        Returns:
            Ready-to-use pipeline.
        """
        if catalog is None:
            catalog = load_catalog(Path(config.catalog.templates_path))
        if registry is None:
            stamps_path = config.catalog.stamps_path
            registry = load_stamp_registry(Path(stamps_path) if stamps_path else None)

        vision = VisionClient(config.vision, transport=vision_transport)
        chat = ChatClient(config.llm, transport=chat_transport)
        pdf_handler = PDFHandler(dpi=config.document.pdf_dpi)

        return cls(
            text_extractor=TextExtractor(vision, pdf_handler),
            stamp_analyzer=StampSignatureAnalyzer(
                vision,
                registry,
                num_predict=config.vision.stamp_num_predict,
                pdf_handler=pdf_handler,
            ),
            classifier=TemplateClassifier(chat, config.classifier),
            field_extractor=FieldExtractor(chat, config.field_extraction),
            catalog=catalog,
        )

    def __enter__(self) -> "DocumentPipeline":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the inference clients."""
        self.text_extractor.client.close()
        self.stamp_analyzer.client.close()
        self.classifier.client.close()
        self.field_extractor.client.close()

    def process(self, doc: RawDocument) -> PipelineResult:
        """Run every stage on one document.

        Args:
            doc: Input document.

        Returns:
            Combined result of all four stages.
        """
        start_time = time.time()
        logger.info("Processing document: %s", doc.filename)

        extraction_error = None
        try:
            extraction = self.text_extractor.extract(doc)
        except DocIntelError as exc:
            logger.warning(
                "Text extraction failed for %s (%s): %s",
                doc.filename,
                type(exc).__name__,
                exc.message,
            )
            extraction_error = exc.message
            extraction = ExtractionResult.empty(
                model_id=self.text_extractor.client.model,
                elapsed_ms=(time.time() - start_time) * 1000,
            )

        text = extraction.text
        stamp_signature = self.stamp_analyzer.analyze(doc, text)
        classification = self.classifier.classify(text, self.catalog)
        fields = self.field_extractor.extract_fields(text, classification.template)

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(
            "Processed %s as '%s' in %.0f ms", doc.filename, fields.template_id, elapsed_ms
        )
        return PipelineResult(
            filename=doc.filename,
            media_type=doc.media_type,
            size=doc.size,
            extraction=extraction,
            stamp_signature=stamp_signature,
            classification=classification,
            fields=fields,
            elapsed_ms=elapsed_ms,
            extraction_error=extraction_error,
        )

    def process_many(
        self,
        docs: list[RawDocument],
        max_workers: int = 4,
        return_exceptions: bool = False,
    ) -> list[PipelineResult | Exception]:
        """Process independent documents in parallel.

        Each document runs in its own future, so one document's failure
        does not affect the others.

        Args:
            docs: Documents to process.
            max_workers: Upper bound on concurrent documents.
            return_exceptions: If True, an unexpected error for a document is
                logged and returned in that document's slot instead of being
                raised.

        Returns:
            Results in the same order as ``docs``.
        """
        if not docs:
            return []
        workers = max(1, min(max_workers, len(docs)))
        logger.info("Processing %d documents with %d workers", len(docs), workers)
        results: list[PipelineResult | Exception] = []
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self.process, doc) for doc in docs]
            for doc, future in zip(docs, futures):
                try:
                    results.append(future.result())
                except Exception as exc:
                    if not return_exceptions:
                        raise
                    logger.error("Failed to process %s: %s", doc.filename, exc)
                    results.append(exc)
        return results

    def check_health(self) -> dict[str, bool]:
        """Report reachability of the vision and chat services."""
        return {
            "vision": self.text_extractor.check_health(),
            "chat": self.classifier.check_health(),
        }
