"""Build a single text buffer and its page boundary table from OCR output."""
from __future__ import annotations

import logging
from typing import List, Tuple

from .models import OcrResult, PageBoundary

LOGGER = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n\n"


def extract_pages(result: OcrResult) -> Tuple[str, List[PageBoundary]]:
    """Concatenate OCR pages into one buffer and record where each page lives.

    Every page contributes its text followed by :data:`PAGE_SEPARATOR`; the
    separator is attributed to the page it follows. Pages without text are
    skipped but keep their numbering. Trailing whitespace of the whole buffer
    is removed and boundaries are clamped to the shortened buffer.
    """

    parts: List[str] = []
    boundaries: List[PageBoundary] = []
    length = 0

    if result.pages:
        for index, page in enumerate(result.pages, start=1):
            if not page.text:
                continue
            page_number = page.page_number if page.page_number is not None else index
            start = length
            parts.append(page.text)
            parts.append(PAGE_SEPARATOR)
            length += len(page.text) + len(PAGE_SEPARATOR)
            boundaries.append(PageBoundary(page_number=page_number, start_offset=start, end_offset=length))
            LOGGER.debug("Page %s spans %s-%s", page_number, start, length)
        text = "".join(parts)
    else:
        text = result.text
        if text:
            boundaries.append(PageBoundary(page_number=1, start_offset=0, end_offset=len(text)))

    text = text.rstrip()
    clamped: List[PageBoundary] = []
    for boundary in boundaries:
        end = min(boundary.end_offset, len(text))
        if end <= boundary.start_offset:
            continue
        clamped.append(PageBoundary(boundary.page_number, boundary.start_offset, end))
    return text, clamped
