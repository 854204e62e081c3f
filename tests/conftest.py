"""Shared test fixtures for the document intelligence test suite."""

import io
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest
from PIL import Image

from docintel.extraction.templates import FieldSpec, FieldType, TemplateDefinition
from docintel.ocr.document import RawDocument

STAMPED_TEXT = (
    "OFFICE OF THE OFFICER COMMANDING 14th BN A.P.S.P. ANANTHAPURAMU\n"
    "Transfer Order No. 123/2024 dated 12/03/2024\n"
    "Sri Ravi Kumar, Head Constable, is transferred from Station Gooty "
    "to Station Tadipatri.\n"
    "Sd/- K. Raghu\n"
    "OFFICER COMMANDING 14th BN A.P.S.P. ANANTHAPURAMU"
)


@pytest.fixture
def png_bytes() -> bytes:
    """Encode a small white PNG image."""
    img = Image.new("RGB", (300, 200), color=(255, 255, 255))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_document(png_bytes: bytes) -> RawDocument:
    return RawDocument(content=png_bytes, media_type="image/png", filename="scan.png")


@pytest.fixture
def stamped_text() -> str:
    return STAMPED_TEXT


@pytest.fixture
def catalog() -> tuple[TemplateDefinition, ...]:
    """A small police document catalog in a fixed order."""
    return (
        TemplateDefinition(
            id="transfer",
            name="Transfer Order",
            category="Administrative",
            fields=(
                FieldSpec(id="officer_name", label="Officer Name", required=True),
                FieldSpec(
                    id="rank",
                    label="Rank",
                    type=FieldType.SELECT,
                    options=("Constable", "Head Constable", "SI"),
                ),
                FieldSpec(id="to_station", label="To Station"),
                FieldSpec(id="order_date", label="Order Date", type=FieldType.DATE),
            ),
        ),
        TemplateDefinition(
            id="award",
            name="Award Certificate",
            category="Recognition",
            fields=(
                FieldSpec(id="recipient_name", label="Recipient Name"),
                FieldSpec(id="cash_amount", label="Cash Amount", type=FieldType.NUMBER),
                FieldSpec(id="citation", label="Citation", type=FieldType.TEXTAREA),
            ),
        ),
        TemplateDefinition(
            id="complaint",
            name="Complaint Report",
            category="Disciplinary",
            fields=(
                FieldSpec(id="complainant_name", label="Complainant Name"),
                FieldSpec(id="incident_date", label="Incident Date", type=FieldType.DATE),
            ),
        ),
    )


@pytest.fixture
def chat_transport() -> Callable[..., httpx.MockTransport]:
    """Build a mock chat service that replies with the given content.

    Pass ``status`` to return an HTTP error instead, or ``error`` to raise
    a transport exception.
    """

    def factory(
        content: str | None = None,
        status: int = 200,
        error: Exception | None = None,
    ) -> httpx.MockTransport:
        def handler(request: httpx.Request) -> httpx.Response:
            if error is not None:
                raise error
            if request.url.path.endswith("/models"):
                return httpx.Response(200, json={"data": []})
            if status != 200:
                return httpx.Response(status, json={"error": "boom"})
            return httpx.Response(
                200, json={"choices": [{"message": {"content": content}}]}
            )

        return httpx.MockTransport(handler)

    return factory


@pytest.fixture
def vision_transport() -> Callable[..., httpx.MockTransport]:
    """Build a mock vision service.

    ``replies`` are returned from ``/api/generate`` in order (the last one
    repeats); ``models`` is what ``/api/tags`` lists.
    """

    def factory(
        replies: list[Any] | None = None,
        models: list[str] | None = None,
        status: int = 200,
        error: Exception | None = None,
        requests: list[httpx.Request] | None = None,
    ) -> httpx.MockTransport:
        pending = list(replies or ["text"])

        def handler(request: httpx.Request) -> httpx.Response:
            if requests is not None:
                requests.append(request)
            if error is not None:
                raise error
            if request.url.path == "/api/tags":
                names = models if models is not None else ["gemma3:latest"]
                return httpx.Response(
                    200, json={"models": [{"name": n} for n in names]}
                )
            if request.url.path == "/api/show":
                name = json.loads(request.content)["model"]
                return httpx.Response(
                    200, json={"details": {"family": name.split(":")[0]}}
                )
            if request.url.path == "/api/pull":
                return httpx.Response(200, json={"status": "success"})
            if status != 200:
                return httpx.Response(status, text="server error")
            reply = pending.pop(0) if len(pending) > 1 else pending[0]
            if isinstance(reply, dict):
                reply = json.dumps(reply)
            return httpx.Response(200, json={"response": reply})

        return httpx.MockTransport(handler)

    return factory


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"
