"""PDF to page image conversion for the vision text extractor.

Renders each PDF page and re-encodes it as PNG so every page can be sent
to the vision service as a separate image.
"""

import io

from pdf2image import convert_from_bytes

from docintel.errors import UnreadableDocument
from docintel.utils.logger import get_logger

from .document import RawDocument, to_png

logger = get_logger(__name__)

PASSTHROUGH_IMAGE_TYPES = frozenset({"image/png", "image/jpeg"})


class PDFHandler:
    """Handles PDF to image conversion for vision inference.

    Args:
        dpi: Resolution for PDF rendering. Higher values help the vision
            model read small print but make each request larger.
    """

    def __init__(self, dpi: int = 200) -> None:
        self.dpi = dpi

    def pdf_to_page_images(self, pdf_bytes: bytes) -> list[bytes]:
        """Convert a PDF into PNG-encoded page images.

        Args:
            pdf_bytes: Raw PDF bytes.

        Returns:
            One PNG image per page, in page order.

        Raises:
            UnreadableDocument: If the PDF cannot be rendered or has no pages.
        """
        try:
            pil_images = convert_from_bytes(pdf_bytes, dpi=self.dpi)
        except Exception as exc:
            raise UnreadableDocument(f"PDF conversion failed: {exc}") from exc

        if not pil_images:
            raise UnreadableDocument("PDF has no pages")

        pages: list[bytes] = []
        for img in pil_images:
            buf = io.BytesIO()
            img.convert("RGB").save(buf, format="PNG")
            pages.append(buf.getvalue())

        logger.info("Converted PDF to %d page images at %d DPI", len(pages), self.dpi)
        return pages

    def document_images(self, doc: RawDocument) -> list[bytes]:
        """Return the page images of any supported document.

        PDFs are rendered page by page; PNG and JPEG pass through; other
        image formats are re-encoded as PNG.

        Args:
            doc: Input document.

        Returns:
            Encoded page images, in page order.

        Raises:
            UnreadableDocument: If the document cannot be rendered.
        """
        if doc.is_pdf:
            return self.pdf_to_page_images(doc.content)
        if doc.media_type in PASSTHROUGH_IMAGE_TYPES:
            return [doc.content]
        return [to_png(doc.content)]
