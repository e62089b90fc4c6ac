"""Chroma-backed section store."""
from __future__ import annotations

import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import chromadb

from alynappi.ingest.models import Category, DocumentRecord, SectionMatch, SectionRecord, SourceType

from .base import SectionStore
from .errors import VectorStoreUnavailableError

DOCUMENTS_COLLECTION = "documents"
SECTIONS_COLLECTION = "sections"

# Document rows are looked up by metadata only; Chroma still requires a vector.
_DOCUMENT_PLACEHOLDER_EMBEDDING = [1.0]


def _without_none(metadata: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in metadata.items() if value is not None}


def _document_from_metadata(document_id: str, metadata: Dict[str, Any]) -> DocumentRecord:
    return DocumentRecord(
        id=document_id,
        title=str(metadata.get("title", "")),
        source_type=SourceType(metadata.get("source_type", SourceType.PRINT.value)),
        year=metadata.get("year"),
        issue=metadata.get("issue"),
        url=metadata.get("url"),
        published_at=metadata.get("published_at"),
    )


class ChromaSectionStore(SectionStore):
    """Persist documents and sections in two Chroma collections.

    Sections live in a cosine-space collection so that ``1 - distance`` is the
    cosine similarity reported to callers.
    """

    backend_name = "chroma"

    def __init__(self, persist_dir: str | Path, *, client: Any | None = None) -> None:
        self.persist_dir = Path(persist_dir)
        try:
            if client is None:
                self.persist_dir.mkdir(parents=True, exist_ok=True)
                client = chromadb.PersistentClient(path=str(self.persist_dir))
            self._client = client
            self._documents = client.get_or_create_collection(
                name=DOCUMENTS_COLLECTION, embedding_function=None
            )
            self._sections = client.get_or_create_collection(
                name=SECTIONS_COLLECTION,
                metadata={"hnsw:space": "cosine"},
                embedding_function=None,
            )
        except Exception as exc:
            raise VectorStoreUnavailableError("Failed to initialise Chroma section store", cause=exc) from exc

    def find_document(self, *, title: str | None = None, url: str | None = None) -> Optional[DocumentRecord]:
        if title is None and url is None:
            return None
        where = {"title": title} if title is not None else {"url": url}
        try:
            result = self._documents.get(where=where, limit=1, include=["metadatas"])
        except Exception as exc:
            raise VectorStoreUnavailableError("Document lookup failed", cause=exc) from exc
        ids = result.get("ids") or []
        if not ids:
            return None
        metadatas = result.get("metadatas") or [{}]
        return _document_from_metadata(ids[0], dict(metadatas[0] or {}))

    def insert_document(self, record: DocumentRecord) -> str:
        document_id = uuid.uuid4().hex
        metadata = _without_none(
            {
                "title": record.title,
                "source_type": record.source_type.value,
                "year": record.year,
                "issue": record.issue,
                "url": record.url,
                "published_at": record.published_at,
            }
        )
        try:
            self._documents.add(
                ids=[document_id],
                embeddings=[_DOCUMENT_PLACEHOLDER_EMBEDDING],
                documents=[record.title],
                metadatas=[metadata],
            )
        except Exception as exc:
            raise VectorStoreUnavailableError("Failed to insert document", cause=exc) from exc
        return document_id

    def delete_document(self, document_id: str) -> None:
        try:
            self._sections.delete(where={"document_id": document_id})
            self._documents.delete(ids=[document_id])
        except Exception as exc:
            raise VectorStoreUnavailableError("Failed to delete document", cause=exc) from exc

    def insert_sections(self, document_id: str, sections: Sequence[SectionRecord]) -> List[str]:
        if not sections:
            return []
        ids = [uuid.uuid4().hex for _ in sections]
        metadatas = [
            _without_none(
                {
                    "document_id": document_id,
                    "category": section.category.value if section.category else None,
                    "page_number": section.page_number,
                }
            )
            for section in sections
        ]
        try:
            self._sections.add(
                ids=ids,
                embeddings=[[float(value) for value in section.embedding] for section in sections],
                documents=[section.content for section in sections],
                metadatas=metadatas,
            )
        except Exception as exc:
            raise VectorStoreUnavailableError("Failed to insert sections", cause=exc) from exc
        return ids

    def _titles(self, document_ids: Sequence[str]) -> Dict[str, str]:
        if not document_ids:
            return {}
        result = self._documents.get(ids=list(document_ids), include=["metadatas"])
        titles: Dict[str, str] = {}
        for document_id, metadata in zip(result.get("ids") or [], result.get("metadatas") or []):
            titles[document_id] = str((metadata or {}).get("title", ""))
        return titles

    def match_sections(self, embedding: Sequence[float], *, threshold: float, count: int) -> List[SectionMatch]:
        if count <= 0:
            return []
        try:
            available = self._sections.count()
            if available == 0:
                return []
            result = self._sections.query(
                query_embeddings=[[float(value) for value in embedding]],
                n_results=min(count, available),
                include=["documents", "metadatas", "distances"],
            )
            ids = (result.get("ids") or [[]])[0]
            documents = (result.get("documents") or [[]])[0]
            metadatas = (result.get("metadatas") or [[]])[0]
            distances = (result.get("distances") or [[]])[0]
            titles = self._titles(
                sorted({str((metadata or {}).get("document_id", "")) for metadata in metadatas})
            )
        except Exception as exc:
            raise VectorStoreUnavailableError("Section similarity search failed", cause=exc) from exc

        matches: List[SectionMatch] = []
        for section_id, content, metadata, distance in zip(ids, documents, metadatas, distances):
            similarity = 1.0 - float(distance)
            if similarity <= threshold:
                continue
            metadata = dict(metadata or {})
            document_id = str(metadata.get("document_id", ""))
            category = metadata.get("category")
            matches.append(
                SectionMatch(
                    id=section_id,
                    document_id=document_id,
                    content=content or "",
                    similarity=similarity,
                    title=titles.get(document_id, ""),
                    category=Category(category) if category else None,
                    page_number=metadata.get("page_number"),
                )
            )
        return matches
