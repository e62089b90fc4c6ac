"""Ingestion of whitelisted web pages discovered through sitemaps."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

import httpx

from alynappi.errors import UpstreamAPIError
from alynappi.providers.base import EmbeddingProvider
from alynappi.telemetry import emit_exception, emit_ingest_event
from alynappi.vectorstore.base import SectionStore

from .batching import EmbeddingBatcher
from .chunking import segment
from .models import Category, DocumentRecord, SourceType
from .pipeline import DocumentOutcome, IngestReport, IngestStatus, persist_document

LOGGER = logging.getLogger(__name__)

_LOC_RE = re.compile(r"<loc>(.*?)</loc>", re.DOTALL)
_TITLE_LINE_RE = re.compile(r"^Title:[ \t]*(.+)$", re.MULTILINE)
_HEADING_RE = re.compile(r"^# (.+)$", re.MULTILINE)
_EXCLUDED_FRAGMENTS = ("/sv/", "/en/")
_EXCLUDED_SUFFIXES = (".pdf", ".xml")


@dataclass(slots=True)
class WebIngestConfig:
    reader_base_url: str = "https://r.jina.ai/"
    allowed_paths: Tuple[str, ...] = ()
    chunk_chars: int = 1000
    overlap_chars: int = 200
    min_content_chars: int = 300
    min_chunk_chars: int = 150
    embedding_batch_size: int = 10
    timeout: float = 60.0


def filter_sitemap_urls(xml: str, allowed_paths: Sequence[str]) -> List[str]:
    """Return ``<loc>`` URLs that match the whitelist and are not excluded variants."""

    lowered_paths = [path.lower() for path in allowed_paths]
    urls: List[str] = []
    for match in _LOC_RE.finditer(xml):
        url = match.group(1).strip()
        lowered = url.lower()
        if not any(path in lowered for path in lowered_paths):
            continue
        if any(fragment in url for fragment in _EXCLUDED_FRAGMENTS) or lowered.endswith(_EXCLUDED_SUFFIXES):
            continue
        urls.append(url)
    return urls


def extract_title(markdown: str, fallback: str) -> str:
    for pattern in (_TITLE_LINE_RE, _HEADING_RE):
        match = pattern.search(markdown)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return fallback


class WebIngestPipeline:
    """Fetch pages as markdown through a reader service and store them as sections."""

    def __init__(
        self,
        *,
        embeddings: EmbeddingProvider,
        store: SectionStore,
        config: Optional[WebIngestConfig] = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or WebIngestConfig()
        self.store = store
        self.batcher = EmbeddingBatcher(embeddings, self.config.embedding_batch_size)
        self._transport = transport

    async def fetch_sitemap_urls(self, client: httpx.AsyncClient, sitemap_url: str) -> List[str]:
        LOGGER.info("Reading sitemap %s", sitemap_url)
        try:
            response = await client.get(sitemap_url)
        except httpx.HTTPError as error:
            LOGGER.error("Failed to read sitemap %s: %s", sitemap_url, error)
            return []
        if not response.is_success:
            LOGGER.error("Sitemap %s answered %s", sitemap_url, response.status_code)
            return []
        urls = filter_sitemap_urls(response.text, self.config.allowed_paths)
        LOGGER.info("Found %s whitelisted page(s) in %s", len(urls), sitemap_url)
        return urls

    async def fetch_page(self, client: httpx.AsyncClient, url: str) -> Tuple[str, str]:
        try:
            response = await client.get(f"{self.config.reader_base_url}{url}")
        except httpx.HTTPError as error:
            raise UpstreamAPIError(f"Reader request failed for {url}: {error}") from error
        if not response.is_success:
            raise UpstreamAPIError(
                f"Reader failed ({response.status_code}) for {url}",
                status_code=response.status_code,
                body=response.text,
            )
        content = response.text
        return extract_title(content, url), content

    async def ingest_url(self, client: httpx.AsyncClient, url: str) -> DocumentOutcome:
        if self.store.find_document(url=url) is not None:
            LOGGER.info("Already stored, skipping: %s", url)
            return DocumentOutcome(title=url, status=IngestStatus.SKIPPED)

        title, content = await self.fetch_page(client, url)
        if len(content) < self.config.min_content_chars:
            LOGGER.info("Content too short, skipping: %s", url)
            emit_ingest_event("ingest.document.skipped", title=title, reason="too_short", characters=len(content))
            return DocumentOutcome(title=title, status=IngestStatus.SKIPPED)

        chunks = [
            chunk
            for chunk in segment(content, self.config.chunk_chars, self.config.overlap_chars)
            if len(chunk.content) > self.config.min_chunk_chars
        ]
        if not chunks:
            LOGGER.info("No chunks long enough, skipping: %s", url)
            return DocumentOutcome(title=title, status=IngestStatus.SKIPPED)

        vectors = await self.batcher.embed([chunk.content for chunk in chunks])
        record = DocumentRecord(
            title=title,
            source_type=SourceType.WEB,
            url=url,
            year=datetime.now(timezone.utc).year,
        )
        document_id = persist_document(self.store, record, chunks, vectors, Category.WEBSITE)
        emit_ingest_event(
            "ingest.document.complete",
            title=title,
            category=Category.WEBSITE.value,
            characters=len(content),
            chunks=len(chunks),
        )
        return DocumentOutcome(
            title=title,
            status=IngestStatus.PROCESSED,
            sections=len(chunks),
            document_id=document_id,
        )

    async def run(self, sitemaps: Iterable[str]) -> IngestReport:
        report = IngestReport()
        async with httpx.AsyncClient(
            timeout=self.config.timeout, follow_redirects=True, transport=self._transport
        ) as client:
            for sitemap_url in sitemaps:
                for url in await self.fetch_sitemap_urls(client, sitemap_url):
                    try:
                        outcome = await self.ingest_url(client, url)
                    except Exception as error:
                        LOGGER.error("Error processing %s: %s", url, error)
                        emit_exception(module=f"{__name__}.ingest_url", error=error)
                        report.failed[url] = str(error)
                        continue
                    report.record(outcome)
        return report
