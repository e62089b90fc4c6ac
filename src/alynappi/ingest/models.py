"""Data models used by the ingestion pipeline and the section store."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class Category(str, Enum):
    """Source categories shown to the user in citations."""

    MAGAZINE = "Lehti"
    GUIDE = "Opas"
    RESEARCH = "Tutkimus"
    WEBSITE = "web-sivusto"


class SourceType(str, Enum):
    PRINT = "print"
    WEB = "web"


@dataclass(frozen=True, slots=True)
class PageBoundary:
    """Character span ``[start_offset, end_offset)`` of one page in the text buffer."""

    page_number: int
    start_offset: int
    end_offset: int

    def contains(self, offset: int) -> bool:
        return self.start_offset <= offset < self.end_offset


@dataclass(frozen=True, slots=True)
class Chunk:
    """Trimmed text span prepared for embedding.

    ``source_start`` and ``source_end`` locate ``content`` in the text buffer the
    chunk was cut from, so ``text[source_start:source_end] == content``.
    """

    content: str
    page_number: Optional[int]
    source_start: int
    source_end: int


@dataclass(frozen=True, slots=True)
class OcrPage:
    page_number: Optional[int]
    text: str


@dataclass(frozen=True, slots=True)
class OcrResult:
    """Normalised OCR output: either per-page text or a single document text."""

    pages: List[OcrPage] = field(default_factory=list)
    text: str = ""


@dataclass(slots=True)
class DocumentRecord:
    """Document row that sections reference."""

    title: str
    source_type: SourceType
    year: Optional[int] = None
    issue: Optional[int] = None
    url: Optional[str] = None
    published_at: Optional[str] = None
    id: Optional[str] = None


@dataclass(slots=True)
class SectionRecord:
    """Embedded chunk ready to be persisted."""

    content: str
    embedding: List[float]
    category: Optional[Category] = None
    page_number: Optional[int] = None


@dataclass(slots=True)
class SectionMatch:
    """Section returned by a similarity search."""

    id: str
    document_id: str
    content: str
    similarity: float
    title: str = ""
    category: Optional[Category] = None
    page_number: Optional[int] = None
