"""Locate source PDFs in the per-category folder tree."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping

from .models import Category

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SourceFile:
    path: Path
    category: Category


def discover_pdfs(base_dir: Path, folder_categories: Mapping[str, Category]) -> List[SourceFile]:
    """List PDFs under ``base_dir/<folder>`` for every configured folder.

    Folders that do not exist are skipped with a log message. Files are
    returned folder by folder in the order of *folder_categories*, sorted by
    name within a folder.
    """

    sources: List[SourceFile] = []
    for folder, category in folder_categories.items():
        directory = base_dir / folder
        if not directory.is_dir():
            LOGGER.info("Directory not found, skipping: %s", directory)
            continue
        pdfs = sorted(
            (entry for entry in directory.iterdir() if entry.is_file() and entry.suffix.lower() == ".pdf"),
            key=lambda entry: entry.name,
        )
        if not pdfs:
            LOGGER.info("No PDF files found in %s", directory)
            continue
        LOGGER.info("Found %s PDF file(s) in %s -> %s", len(pdfs), folder, category.value)
        sources.extend(SourceFile(path=pdf, category=category) for pdf in pdfs)
    return sources
