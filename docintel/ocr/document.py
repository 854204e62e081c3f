"""Immutable input document and media type helpers."""

import io
import mimetypes
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from docintel.errors import UnreadableDocument

PDF_MEDIA_TYPE = "application/pdf"

SUPPORTED_MEDIA_TYPES = frozenset(
    {
        "image/png",
        "image/jpeg",
        "image/tiff",
        "image/webp",
        PDF_MEDIA_TYPE,
    }
)


@dataclass(frozen=True)
class RawDocument:
    """A document as received from the caller.

    The pipeline reads the content but never mutates or replaces it.
    """

    content: bytes
    media_type: str
    filename: str = "document"

    @property
    def size(self) -> int:
        """Size of the content in bytes."""
        return len(self.content)

    @property
    def is_pdf(self) -> bool:
        return self.media_type == PDF_MEDIA_TYPE

    @classmethod
    def from_path(cls, path: Path) -> "RawDocument":
        """Read a document from disk, guessing its media type from the suffix.

        Args:
            path: Path to an image or PDF file.

        Returns:
            Document holding the file's bytes.
        """
        path = Path(path)
        media_type, _ = mimetypes.guess_type(path.name)
        content = path.read_bytes()
        if media_type is None:
            media_type = sniff_media_type(content)
        return cls(content=content, media_type=media_type, filename=path.name)

    @classmethod
    def from_bytes(
        cls,
        content: bytes,
        filename: str = "document",
        media_type: str | None = None,
    ) -> "RawDocument":
        """Wrap uploaded bytes, sniffing the media type when not declared.

        Args:
            content: Raw file bytes.
            filename: Display name for logs and results.
            media_type: Declared media type, if the transport supplied one.

        Returns:
            Document holding the bytes.
        """
        if not media_type or media_type == "application/octet-stream":
            media_type = sniff_media_type(content)
        return cls(content=content, media_type=media_type, filename=filename)


def sniff_media_type(content: bytes) -> str:
    """Guess a media type from the leading bytes of a file.

    Args:
        content: Raw file bytes.

    Returns:
        Media type string; ``application/octet-stream`` when unknown.
    """
    if content[:4] == b"%PDF":
        return PDF_MEDIA_TYPE
    if content[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if content[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if content[:4] in (b"II*\x00", b"MM\x00*"):
        return "image/tiff"
    if content[:4] == b"RIFF" and content[8:12] == b"WEBP":
        return "image/webp"
    return "application/octet-stream"


def image_size(content: bytes) -> tuple[int, int]:
    """Return ``(width, height)`` of an encoded image, or ``(0, 0)``.

    Args:
        content: Encoded image bytes.
    """
    try:
        with Image.open(io.BytesIO(content)) as img:
            return img.size
    except (UnidentifiedImageError, OSError):
        return (0, 0)


def to_png(content: bytes) -> bytes:
    """Re-encode an image (e.g. TIFF) as PNG for the vision service.

    Args:
        content: Encoded image bytes.

    Returns:
        PNG-encoded bytes.

    Raises:
        UnreadableDocument: If the bytes are not a readable image.
    """
    try:
        with Image.open(io.BytesIO(content)) as img:
            buf = io.BytesIO()
            img.convert("RGB").save(buf, format="PNG")
            return buf.getvalue()
    except (UnidentifiedImageError, OSError) as exc:
        raise UnreadableDocument(f"Unreadable image: {exc}") from exc
