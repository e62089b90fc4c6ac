"""Sequential batching of embedding requests."""
from __future__ import annotations

import logging
import time
from typing import Iterator, List, Sequence

from alynappi.errors import EmbeddingCountMismatchError, EmbeddingDimensionError
from alynappi.providers.base import EmbeddingProvider
from alynappi.telemetry import emit_embeddings_event

LOGGER = logging.getLogger(__name__)


def iter_batches(texts: Sequence[str], batch_size: int) -> Iterator[List[str]]:
    """Yield consecutive slices of *texts* holding at most *batch_size* items."""

    if batch_size <= 0:
        raise ValueError("batch_size must be a positive integer")
    for offset in range(0, len(texts), batch_size):
        yield list(texts[offset : offset + batch_size])


class EmbeddingBatcher:
    """Embed texts one batch at a time, preserving input order.

    Batches are awaited strictly one after another; running them concurrently
    would exceed the upstream rate limits.
    """

    def __init__(self, provider: EmbeddingProvider, batch_size: int = 10) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be a positive integer")
        self.provider = provider
        self.batch_size = batch_size

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        vectors: List[List[float]] = []
        total_batches = (len(texts) + self.batch_size - 1) // self.batch_size
        dimension: int | None = None

        for batch_number, batch in enumerate(iter_batches(texts, self.batch_size), start=1):
            LOGGER.info("Embedding batch %s/%s (%s texts)", batch_number, total_batches, len(batch))
            started = time.perf_counter()
            try:
                embeddings = await self.provider.embed(batch)
            except Exception as error:
                emit_embeddings_event(
                    model=self.provider.model_name,
                    count=len(batch),
                    duration_ms=(time.perf_counter() - started) * 1000.0,
                    errors=[str(error)],
                )
                raise
            emit_embeddings_event(
                model=self.provider.model_name,
                count=len(batch),
                duration_ms=(time.perf_counter() - started) * 1000.0,
            )

            if len(embeddings) != len(batch):
                raise EmbeddingCountMismatchError(expected=len(batch), received=len(embeddings))
            for vector in embeddings:
                if dimension is None:
                    dimension = len(vector)
                elif len(vector) != dimension:
                    raise EmbeddingDimensionError(
                        f"Embedding dimensionality changed from {dimension} to {len(vector)}"
                    )
            vectors.extend(embeddings)

        if len(vectors) != len(texts):
            raise EmbeddingCountMismatchError(expected=len(texts), received=len(vectors))
        return vectors


async def embed(provider: EmbeddingProvider, texts: Sequence[str], batch_size: int) -> List[List[float]]:
    """Functional shortcut for :meth:`EmbeddingBatcher.embed`."""

    return await EmbeddingBatcher(provider, batch_size).embed(texts)
