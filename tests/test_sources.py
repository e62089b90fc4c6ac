from pathlib import Path

import pytest

from alynappi.config import DEFAULT_FOLDER_CATEGORIES
from alynappi.ingest.discovery import SourceFile, discover_pdfs
from alynappi.ingest.filenames import document_title, parse_filename
from alynappi.ingest.models import Category


@pytest.mark.parametrize(
    "filename, expected",
    [
        ("Nappi_1_2025.pdf", (1, 2025)),
        ("nappi-12 2019.pdf", (12, 2019)),
        ("Nappi3_2020.pdf", (3, 2020)),
        ("Arkisto NAPPI 4-2018 skannaus.pdf", (4, 2018)),
        ("Pelkkikangas.pdf", (None, None)),
        ("Nappi_2025.pdf", (None, None)),
    ],
)
def test_parse_filename(filename, expected):
    assert parse_filename(filename) == expected


def test_document_title_is_file_stem():
    assert document_title("Nappi_1_2025.pdf") == "Nappi_1_2025"
    assert document_title("Kuulon opas.PDF") == "Kuulon opas"


def _touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"%PDF-1.4\n")
    return path


def test_discover_pdfs_walks_folders_in_table_order(tmp_path):
    _touch(tmp_path / "tutkimukset-pdf" / "x.pdf")
    _touch(tmp_path / "lehti-pdf" / "b.pdf")
    _touch(tmp_path / "lehti-pdf" / "A.PDF")
    (tmp_path / "lehti-pdf" / "notes.txt").write_text("ei pdf", encoding="utf-8")
    (tmp_path / "lehti-pdf" / "sub.pdf").mkdir()

    sources = discover_pdfs(tmp_path, DEFAULT_FOLDER_CATEGORIES)

    assert sources == [
        SourceFile(path=tmp_path / "lehti-pdf" / "A.PDF", category=Category.MAGAZINE),
        SourceFile(path=tmp_path / "lehti-pdf" / "b.pdf", category=Category.MAGAZINE),
        SourceFile(path=tmp_path / "tutkimukset-pdf" / "x.pdf", category=Category.RESEARCH),
    ]


def test_discover_pdfs_with_no_folders(tmp_path):
    assert discover_pdfs(tmp_path / "missing", DEFAULT_FOLDER_CATEGORIES) == []
