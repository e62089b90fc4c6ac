"""Overlapping, page-attributed text segmentation for embedding."""
from __future__ import annotations

import logging
from bisect import bisect_right
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .models import Chunk, PageBoundary

LOGGER = logging.getLogger(__name__)

PARAGRAPH_BREAK = "\n\n"
SENTENCE_BREAKS = (". ", "! ", "? ")


@dataclass(slots=True)
class ChunkingConfig:
    chunk_chars: int = 1000
    overlap_chars: int = 200


def safe_overlap(chunk_size: int, overlap: int) -> int:
    """Clamp *overlap* to ``floor(chunk_size * 0.3)``."""

    return min(overlap, chunk_size * 3 // 10)


def page_for_offset(boundaries: Sequence[PageBoundary], offset: int) -> Optional[int]:
    """Return the page whose span contains *offset*, or ``None`` for gaps.

    *boundaries* must be sorted by ``start_offset`` and non-overlapping.
    """

    if not boundaries:
        return None
    starts = [boundary.start_offset for boundary in boundaries]
    index = bisect_right(starts, offset) - 1
    if index < 0:
        return None
    boundary = boundaries[index]
    return boundary.page_number if boundary.contains(offset) else None


def _find_break(text: str, start: int, end: int, chunk_size: int) -> int:
    zone_start = max(start + chunk_size * 7 // 10, end - chunk_size * 3 // 10)

    paragraph = text.rfind(PARAGRAPH_BREAK, zone_start, end)
    if paragraph != -1:
        return paragraph + len(PARAGRAPH_BREAK)

    sentence = max(text.rfind(marker, zone_start, end) for marker in SENTENCE_BREAKS)
    if sentence != -1:
        return sentence + 2

    space = text.rfind(" ", zone_start, end)
    if space != -1:
        return space + 1

    return end


def _trimmed_chunk(
    text: str, start: int, end: int, boundaries: Sequence[PageBoundary]
) -> Optional[Chunk]:
    raw = text[start:end]
    content = raw.strip()
    if not content:
        return None
    source_start = start + (len(raw) - len(raw.lstrip()))
    return Chunk(
        content=content,
        page_number=page_for_offset(boundaries, source_start),
        source_start=source_start,
        source_end=source_start + len(content),
    )


def segment(
    text: str,
    chunk_size: int = 1000,
    overlap: int = 200,
    boundaries: Sequence[PageBoundary] = (),
) -> List[Chunk]:
    """Split *text* into overlapping chunks that prefer natural break points.

    A window of ``chunk_size`` characters is cut at the last paragraph break,
    else sentence end, else space found in the final 30% of the window; when
    none exists the raw boundary is used. The next window starts
    ``safe_overlap`` characters before the cut, or at the cut itself when that
    would not move forward, so segmentation always terminates.
    """

    if chunk_size <= 0:
        raise ValueError("chunk_size must be a positive integer")
    if overlap < 0:
        raise ValueError("overlap must be a non-negative integer")

    overlap_chars = safe_overlap(chunk_size, overlap)
    text_length = len(text)
    chunks: List[Chunk] = []
    start = 0

    while start < text_length:
        end = start + chunk_size
        if end >= text_length:
            chunk = _trimmed_chunk(text, start, text_length, boundaries)
            if chunk is not None:
                chunks.append(chunk)
            break

        cut = _find_break(text, start, end, chunk_size)
        chunk = _trimmed_chunk(text, start, cut, boundaries)
        if chunk is not None:
            chunks.append(chunk)

        next_start = cut - overlap_chars
        start = next_start if next_start > start else cut

    LOGGER.debug(
        "Segmented %s characters into %s chunks (size=%s, overlap=%s)",
        text_length,
        len(chunks),
        chunk_size,
        overlap_chars,
    )
    return chunks


class OverlappingChunker:
    """Configured front-end to :func:`segment` used by the ingestion pipeline."""

    def __init__(self, config: Optional[ChunkingConfig] = None) -> None:
        self.config = config or ChunkingConfig()

    def chunk(self, text: str, boundaries: Sequence[PageBoundary] = ()) -> List[Chunk]:
        return segment(text, self.config.chunk_chars, self.config.overlap_chars, boundaries)
