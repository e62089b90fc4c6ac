"""Filename conventions of the scanned magazine archive."""
from __future__ import annotations

import re
from pathlib import Path
from typing import Optional, Tuple

_ISSUE_YEAR_RE = re.compile(r"Nappi[_\s-]?(\d+)[_\s-]?(\d{4})", re.IGNORECASE)


def parse_filename(filename: str) -> Tuple[Optional[int], Optional[int]]:
    """Return ``(issue, year)`` encoded in names such as ``Nappi_1_2025.pdf``.

    Names that do not follow the convention yield ``(None, None)``.
    """

    match = _ISSUE_YEAR_RE.search(filename)
    if match is None:
        return None, None
    return int(match.group(1)), int(match.group(2))


def document_title(filename: str) -> str:
    return Path(filename).stem
