"""Base provider interfaces for OCR, embeddings and chat completions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import AsyncContextManager, AsyncIterator, Dict, List, Sequence

from alynappi.ingest.models import OcrResult

__all__ = ["ChatMessage", "CompletionProvider", "EmbeddingProvider", "OcrProvider"]

ChatMessage = Dict[str, str]


class OcrProvider(ABC):
    """Turns a scanned document into text."""

    @abstractmethod
    async def extract(self, path: Path) -> OcrResult:
        """Return the OCR result for the document stored at *path*."""


class EmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    model_name: str = "unknown"

    @abstractmethod
    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Encode the provided texts into embeddings, one vector per text."""


class CompletionProvider(ABC):
    """Abstract interface for streaming chat completion providers."""

    model_name: str = "unknown"

    @abstractmethod
    def stream_chat(self, messages: Sequence[ChatMessage]) -> AsyncContextManager[AsyncIterator[bytes]]:
        """Open a streaming completion and yield the raw event-stream bytes.

        Entering the context performs the request and raises when the upstream
        answers with a non-success status; leaving it releases the connection.
        """
