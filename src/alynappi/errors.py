"""Exception hierarchy shared by the ingestion pipeline and the chat API."""
from __future__ import annotations


class AlyNappiError(RuntimeError):
    """Base class for application errors."""


class ConfigurationError(AlyNappiError):
    """Raised when required configuration (API keys, paths) is missing or invalid."""


class InvalidRequestError(AlyNappiError):
    """Raised when a client request cannot be processed as submitted."""


class UpstreamAPIError(AlyNappiError):
    """Raised when an external API answers with a non-success response."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class OcrError(AlyNappiError):
    """Raised when OCR produced no usable text for a document."""


class EmbeddingCountMismatchError(AlyNappiError):
    """Raised when an embedding call returns a different number of vectors than requested."""

    def __init__(self, expected: int, received: int) -> None:
        super().__init__(f"Mismatch: {expected} texts but {received} embeddings")
        self.expected = expected
        self.received = received


class EmbeddingDimensionError(AlyNappiError):
    """Raised when vectors of different dimensionality are mixed within one document."""


class DocumentIngestError(AlyNappiError):
    """Raised when a single document cannot be ingested."""
