"""Error taxonomy for the inference-backed pipeline stages.

Transport and parsing problems are raised at the client boundary as the
exceptions below. Stages 2-4 convert them into :class:`Failure` values and
degrade to their local fallback; stage 1 lets them reach the caller.
"""

from dataclasses import dataclass
from enum import StrEnum


class DocIntelError(Exception):
    """Base exception for all pipeline errors."""

    default_message = "An unknown document intelligence error occurred."

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class TransportFailure(DocIntelError):
    """Raised when an inference service cannot be reached or errors out."""

    default_message = "Inference service is unreachable."


class MalformedResponse(DocIntelError):
    """Raised when a reply is not JSON or lacks the expected keys."""

    default_message = "Inference service returned a malformed response."


class InvalidReference(DocIntelError):
    """Raised when a model names a template or stamp that does not exist."""

    default_message = "Model referenced an unknown identifier."


class InferenceUnavailable(TransportFailure):
    """Raised by text extraction when the vision service is unavailable."""

    default_message = "Vision inference service is unavailable."


class InferenceMalformed(MalformedResponse):
    """Raised by text extraction when the reply has no text field."""

    default_message = "Vision inference reply has no text."


class UnreadableDocument(DocIntelError):
    """Raised when a document cannot be rendered into page images."""

    default_message = "Document could not be rendered into page images."


class FailureKind(StrEnum):
    """Kinds of primary-path failure a stage can fall back from."""

    TRANSPORT = "transport_failure"
    MALFORMED = "malformed_response"
    INVALID_REFERENCE = "invalid_reference"


@dataclass(frozen=True)
class Failure:
    """A failed primary attempt, returned as a value instead of raised."""

    kind: FailureKind
    message: str

    @classmethod
    def from_error(cls, error: DocIntelError) -> "Failure":
        """Classify a pipeline exception into a failure value.

        Args:
            error: Exception raised by a client or response parser.

        Returns:
            Failure carrying the matching kind and the error message.
        """
        if isinstance(error, TransportFailure):
            kind = FailureKind.TRANSPORT
        elif isinstance(error, InvalidReference):
            kind = FailureKind.INVALID_REFERENCE
        else:
            kind = FailureKind.MALFORMED
        return cls(kind=kind, message=error.message)
