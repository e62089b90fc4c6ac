"""Command line entry point for populating the archive from PDFs and web pages."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path

from alynappi.config import Settings, get_settings
from alynappi.errors import ConfigurationError
from alynappi.ingest.discovery import discover_pdfs
from alynappi.ingest.pipeline import IngestPipelineConfig, IngestReport, PdfIngestPipeline
from alynappi.ingest.web import WebIngestConfig, WebIngestPipeline
from alynappi.logging_config import configure_logging
from alynappi.providers import build_embedding_provider, build_ocr_provider
from alynappi.telemetry import traced_duration
from alynappi.vectorstore import get_section_store


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--log-level", default="INFO", help="Root log level (default: INFO).")
    subcommands = parser.add_subparsers(dest="command", required=True)

    pdf = subcommands.add_parser("pdf", help="OCR and store PDFs from the configured source folders.")
    pdf.add_argument(
        "--sources-dir",
        type=Path,
        default=None,
        help="Directory holding the category folders (default: SOURCES_DIR).",
    )

    web = subcommands.add_parser("web", help="Fetch whitelisted pages listed in the sitemaps.")
    web.add_argument(
        "--sitemap",
        action="append",
        default=None,
        help="Sitemap URL to read; may be repeated (default: SITEMAPS).",
    )
    return parser.parse_args(argv)


async def run_pdf_ingest(settings: Settings, sources_dir: Path | None = None) -> IngestReport:
    pipeline = PdfIngestPipeline(
        ocr=build_ocr_provider(settings),
        embeddings=build_embedding_provider(settings),
        store=get_section_store(),
        config=IngestPipelineConfig(
            chunk_chars=settings.chunk_size,
            overlap_chars=settings.chunk_overlap,
            embedding_batch_size=settings.embedding_batch_size,
        ),
    )
    sources = discover_pdfs(sources_dir or settings.sources_dir, settings.folder_categories)
    return await pipeline.run(sources)


async def run_web_ingest(settings: Settings, sitemaps: list[str] | None = None) -> IngestReport:
    pipeline = WebIngestPipeline(
        embeddings=build_embedding_provider(settings),
        store=get_section_store(),
        config=WebIngestConfig(
            reader_base_url=settings.reader_base_url,
            allowed_paths=settings.web_allowed_paths,
            chunk_chars=settings.chunk_size,
            overlap_chars=settings.chunk_overlap,
            min_content_chars=settings.web_min_content_chars,
            min_chunk_chars=settings.web_min_chunk_chars,
            embedding_batch_size=settings.embedding_batch_size,
            timeout=settings.http_timeout,
        ),
    )
    return await pipeline.run(sitemaps or settings.sitemaps)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(level=args.log_level.upper())
    settings = get_settings()

    try:
        with traced_duration(f"ingest.{args.command}"):
            if args.command == "pdf":
                report = asyncio.run(run_pdf_ingest(settings, args.sources_dir))
            else:
                report = asyncio.run(run_web_ingest(settings, args.sitemap))
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    print(json.dumps(asdict(report), ensure_ascii=False, indent=2))
    return 1 if report.failed else 0


if __name__ == "__main__":
    sys.exit(main())
