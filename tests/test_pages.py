from alynappi.ingest.models import OcrPage, OcrResult, PageBoundary
from alynappi.ingest.pages import PAGE_SEPARATOR, extract_pages


def test_extract_pages_records_each_page_span():
    result = OcrResult(pages=[OcrPage(1, "Ensimmäinen sivu"), OcrPage(2, "Toinen sivu")])

    text, boundaries = extract_pages(result)

    first_length = len("Ensimmäinen sivu") + len(PAGE_SEPARATOR)
    assert text == "Ensimmäinen sivu\n\nToinen sivu"
    assert boundaries == [
        PageBoundary(1, 0, first_length),
        PageBoundary(2, first_length, len(text)),
    ]
    assert text[boundaries[1].start_offset :].startswith("Toinen")


def test_extract_pages_skips_empty_pages_but_keeps_numbering():
    result = OcrResult(pages=[OcrPage(1, "abc"), OcrPage(2, ""), OcrPage(3, "de")])

    text, boundaries = extract_pages(result)

    assert text == "abc\n\nde"
    assert boundaries == [PageBoundary(1, 0, 5), PageBoundary(3, 5, 7)]


def test_extract_pages_falls_back_to_position_for_missing_numbers():
    result = OcrResult(pages=[OcrPage(None, "one"), OcrPage(None, "two")])

    _, boundaries = extract_pages(result)

    assert [boundary.page_number for boundary in boundaries] == [1, 2]


def test_extract_pages_uses_document_text_as_single_page():
    text, boundaries = extract_pages(OcrResult(text="  koko teksti  \n"))

    assert text == "  koko teksti"
    assert boundaries == [PageBoundary(1, 0, len(text))]


def test_extract_pages_of_empty_result():
    assert extract_pages(OcrResult()) == ("", [])
    assert extract_pages(OcrResult(pages=[OcrPage(1, "")])) == ("", [])
