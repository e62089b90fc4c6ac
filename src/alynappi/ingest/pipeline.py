"""PDF ingestion: OCR, page tracking, chunking, embedding and persistence."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from alynappi.errors import DocumentIngestError, OcrError
from alynappi.logging_config import AUDIT_LOGGER_NAME
from alynappi.providers.base import EmbeddingProvider, OcrProvider
from alynappi.telemetry import emit_exception, emit_ingest_event, emit_store_event
from alynappi.vectorstore.base import SectionStore

from .batching import EmbeddingBatcher
from .chunking import ChunkingConfig, OverlappingChunker
from .discovery import SourceFile
from .filenames import document_title, parse_filename
from .models import Category, Chunk, DocumentRecord, SectionRecord, SourceType
from .pages import extract_pages

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)


@dataclass(slots=True)
class IngestPipelineConfig:
    chunk_chars: int = 1000
    overlap_chars: int = 200
    embedding_batch_size: int = 10


class IngestStatus(str, Enum):
    PROCESSED = "processed"
    SKIPPED = "skipped"


@dataclass(slots=True)
class DocumentOutcome:
    title: str
    status: IngestStatus
    sections: int = 0
    document_id: Optional[str] = None


@dataclass(slots=True)
class IngestReport:
    """Summary of one ingestion run."""

    processed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    def record(self, outcome: DocumentOutcome) -> None:
        if outcome.status is IngestStatus.PROCESSED:
            self.processed.append(outcome.title)
        else:
            self.skipped.append(outcome.title)


def persist_document(
    store: SectionStore,
    record: DocumentRecord,
    chunks: Sequence[Chunk],
    vectors: Sequence[Sequence[float]],
    category: Optional[Category],
) -> str:
    """Insert *record* and its sections; nothing remains stored if either step fails."""

    if len(chunks) != len(vectors):
        raise DocumentIngestError(f"Mismatch: {len(chunks)} chunks but {len(vectors)} embeddings")

    sections = [
        SectionRecord(
            content=chunk.content,
            embedding=list(vector),
            category=category,
            page_number=chunk.page_number,
        )
        for chunk, vector in zip(chunks, vectors)
    ]
    document_id = store.insert_document(record)
    try:
        store.insert_sections(document_id, sections)
    except Exception as error:
        LOGGER.error("Failed to insert sections for %s; removing document %s", record.title, document_id)
        emit_store_event("store.insert_sections", backend=store.backend_name, count=len(sections), error=error)
        store.delete_document(document_id)
        raise
    emit_store_event("store.insert_sections", backend=store.backend_name, count=len(sections))
    return document_id


class PdfIngestPipeline:
    """Process scanned PDFs one at a time into stored, embedded sections."""

    def __init__(
        self,
        *,
        ocr: OcrProvider,
        embeddings: EmbeddingProvider,
        store: SectionStore,
        config: Optional[IngestPipelineConfig] = None,
    ) -> None:
        self.config = config or IngestPipelineConfig()
        self.ocr = ocr
        self.store = store
        self.chunker = OverlappingChunker(
            ChunkingConfig(chunk_chars=self.config.chunk_chars, overlap_chars=self.config.overlap_chars)
        )
        self.batcher = EmbeddingBatcher(embeddings, self.config.embedding_batch_size)

    async def ingest_file(self, source: SourceFile) -> DocumentOutcome:
        """Ingest one PDF; raises when the document cannot be processed."""

        title = document_title(source.path.name)
        LOGGER.info("Processing %s [category: %s]", source.path.name, source.category.value)

        if self.store.find_document(title=title) is not None:
            LOGGER.info("%s already exists, skipping", title)
            emit_ingest_event("ingest.document.skipped", title=title, category=source.category.value, reason="duplicate")
            return DocumentOutcome(title=title, status=IngestStatus.SKIPPED)

        started = time.perf_counter()
        ocr_result = await self.ocr.extract(source.path)
        text, boundaries = extract_pages(ocr_result)
        if not text.strip():
            raise OcrError(f"OCR returned empty content for {source.path.name}")
        LOGGER.info("OCR extracted %s characters from %s page(s)", len(text), len(boundaries))

        chunks = self.chunker.chunk(text, boundaries)
        LOGGER.info("Created %s chunks for %s", len(chunks), title)

        vectors = await self.batcher.embed([chunk.content for chunk in chunks])

        issue, year = parse_filename(source.path.name)
        record = DocumentRecord(title=title, source_type=SourceType.PRINT, year=year, issue=issue)
        document_id = persist_document(self.store, record, chunks, vectors, source.category)

        emit_ingest_event(
            "ingest.document.complete",
            title=title,
            category=source.category.value,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            pages=len(boundaries),
            characters=len(text),
            chunks=len(chunks),
        )
        AUDIT_LOGGER.info(
            {
                "event": "ingest",
                "title": title,
                "document_id": document_id,
                "category": source.category.value,
                "issue": issue,
                "year": year,
                "chunk_count": len(chunks),
            }
        )
        return DocumentOutcome(
            title=title,
            status=IngestStatus.PROCESSED,
            sections=len(chunks),
            document_id=document_id,
        )

    async def run(self, sources: Iterable[SourceFile]) -> IngestReport:
        """Ingest *sources* sequentially; a failing document does not stop the run."""

        report = IngestReport()
        for source in sources:
            try:
                outcome = await self.ingest_file(source)
            except Exception as error:
                title = document_title(source.path.name)
                LOGGER.error("Error processing %s: %s", source.path.name, error)
                emit_exception(module=f"{__name__}.ingest_file", error=error)
                report.failed[title] = str(error)
                continue
            report.record(outcome)
        LOGGER.info(
            "Ingestion finished: %s processed, %s skipped, %s failed",
            len(report.processed),
            len(report.skipped),
            len(report.failed),
        )
        return report
