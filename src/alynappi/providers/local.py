"""Providers that run without the hosted API: PDF text layer and local embeddings."""
from __future__ import annotations

import asyncio
import hashlib
import logging
import random
from pathlib import Path
from typing import List, Sequence

from PyPDF2 import PdfReader

from alynappi.errors import ConfigurationError
from alynappi.ingest.models import OcrPage, OcrResult

from .base import EmbeddingProvider, OcrProvider

LOGGER = logging.getLogger(__name__)


class PdfTextLayerProvider(OcrProvider):
    """Read the embedded text layer of a PDF page by page.

    Useful for documents that were already OCRed by the scanner software.
    """

    async def extract(self, path: Path) -> OcrResult:
        return await asyncio.to_thread(self._extract_sync, path)

    def _extract_sync(self, path: Path) -> OcrResult:
        reader = PdfReader(str(path))
        pages: List[OcrPage] = []
        for index, page in enumerate(reader.pages, start=1):
            try:
                text = page.extract_text() or ""
            except Exception as error:  # pragma: no cover - depends on the PDF backend
                LOGGER.warning("Failed to extract text from %s page %s: %s", path.name, index, error)
                text = ""
            pages.append(OcrPage(page_number=index, text=text))
        return OcrResult(pages=pages)


class SentenceTransformerEmbeddingProvider(EmbeddingProvider):
    """Embed texts with a locally stored sentence-transformers model."""

    def __init__(self, model_name_or_path: str, *, device: str | None = None) -> None:
        try:
            from sentence_transformers import SentenceTransformer  # type: ignore import-not-found
        except ImportError as error:
            raise ConfigurationError(
                "EMBEDDING_PROVIDER=local requires the 'sentence-transformers' package"
            ) from error
        self.model_name = model_name_or_path
        self._model = SentenceTransformer(model_name_or_path, device=device)

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        return await asyncio.to_thread(self._encode, list(texts))

    def _encode(self, texts: List[str]) -> List[List[float]]:
        embeddings = self._model.encode(
            texts,
            convert_to_numpy=True,
            show_progress_bar=False,
            normalize_embeddings=False,
        )
        return embeddings.tolist()


class HashEmbeddingProvider(EmbeddingProvider):
    """Return deterministic pseudo-random vectors derived from each text."""

    model_name = "hash"

    def __init__(self, dimension: int = 64) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be a positive integer")
        self.dimension = dimension

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        vectors: List[List[float]] = []
        for text in texts:
            seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest(), "big")
            rng = random.Random(seed)
            vectors.append([rng.uniform(-1.0, 1.0) for _ in range(self.dimension)])
        return vectors
