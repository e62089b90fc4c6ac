"""Persistence contract for documents and their embedded sections."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from alynappi.ingest.models import DocumentRecord, SectionMatch, SectionRecord


class SectionStore(ABC):
    """Document and section persistence with similarity search."""

    backend_name = "unknown"

    @abstractmethod
    def find_document(self, *, title: str | None = None, url: str | None = None) -> Optional[DocumentRecord]:
        """Return an existing document matching *title* or *url*."""

    @abstractmethod
    def insert_document(self, record: DocumentRecord) -> str:
        """Persist *record* and return its identifier."""

    @abstractmethod
    def delete_document(self, document_id: str) -> None:
        """Remove a document together with all of its sections."""

    @abstractmethod
    def insert_sections(self, document_id: str, sections: Sequence[SectionRecord]) -> List[str]:
        """Persist embedded sections belonging to *document_id*."""

    @abstractmethod
    def match_sections(self, embedding: Sequence[float], *, threshold: float, count: int) -> List[SectionMatch]:
        """Return up to *count* sections with similarity above *threshold*, best first."""
