"""Simple in-memory section store for tests and local development."""
from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence

from alynappi.ingest.models import DocumentRecord, SectionMatch, SectionRecord

from .base import SectionStore

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class _StoredSection:
    id: str
    document_id: str
    record: SectionRecord


def _cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    dot = sum(a * b for a, b in zip(left, right))
    left_norm = math.sqrt(sum(a * a for a in left))
    right_norm = math.sqrt(sum(b * b for b in right))
    if left_norm == 0.0 or right_norm == 0.0:
        return 0.0
    return dot / (left_norm * right_norm)


class InMemorySectionStore(SectionStore):
    """Keep documents and sections in process memory."""

    backend_name = "memory"

    def __init__(self) -> None:
        self.documents: Dict[str, DocumentRecord] = {}
        self.sections: List[_StoredSection] = []

    def find_document(self, *, title: str | None = None, url: str | None = None) -> Optional[DocumentRecord]:
        for record in self.documents.values():
            if title is not None and record.title == title:
                return record
            if url is not None and record.url == url:
                return record
        return None

    def insert_document(self, record: DocumentRecord) -> str:
        document_id = uuid.uuid4().hex
        self.documents[document_id] = replace(record, id=document_id)
        return document_id

    def delete_document(self, document_id: str) -> None:
        self.documents.pop(document_id, None)
        self.sections = [section for section in self.sections if section.document_id != document_id]

    def insert_sections(self, document_id: str, sections: Sequence[SectionRecord]) -> List[str]:
        if document_id not in self.documents:
            raise KeyError(f"Document '{document_id}' does not exist")
        ids: List[str] = []
        for record in sections:
            section_id = uuid.uuid4().hex
            self.sections.append(_StoredSection(id=section_id, document_id=document_id, record=record))
            ids.append(section_id)
        return ids

    def match_sections(self, embedding: Sequence[float], *, threshold: float, count: int) -> List[SectionMatch]:
        if count <= 0:
            return []
        scored: List[tuple[float, _StoredSection]] = []
        for section in self.sections:
            if len(section.record.embedding) != len(embedding):
                LOGGER.warning("Skipping section %s with mismatched dimensionality", section.id)
                continue
            similarity = _cosine_similarity(embedding, section.record.embedding)
            if similarity > threshold:
                scored.append((similarity, section))
        scored.sort(key=lambda item: item[0], reverse=True)

        matches: List[SectionMatch] = []
        for similarity, section in scored[:count]:
            document = self.documents.get(section.document_id)
            matches.append(
                SectionMatch(
                    id=section.id,
                    document_id=section.document_id,
                    content=section.record.content,
                    similarity=similarity,
                    title=document.title if document else "",
                    category=section.record.category,
                    page_number=section.record.page_number,
                )
            )
        return matches
