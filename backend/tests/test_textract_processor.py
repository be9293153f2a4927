import json

import pytest

from docintel.documents.ingestion.processors import (
    count_pages,
    extract_text_by_page,
    parse_results_blob,
    results_key_for,
)


def line(text, page):
    return {"BlockType": "LINE", "Text": text, "Page": page}


def test_results_key_strips_pdf_suffix():
    key = results_key_for("uploads/abc/contract.pdf")
    assert key == "textract-results/uploads/abc/contract-textract.json"


def test_results_key_only_strips_trailing_suffix():
    assert results_key_for("uploads/a.pdf.b/file.PDF", "out") == "out/uploads/a.pdf.b/file-textract.json"


def test_lines_are_grouped_by_page_in_order():
    results = {
        "Blocks": [
            {"BlockType": "PAGE", "Page": 1},
            line("second page", 2),
            line("first", 1),
            {"BlockType": "WORD", "Text": "first", "Page": 1},
            line("line two", 1),
            line("", 3),
        ]
    }

    pages = extract_text_by_page(results)

    assert pages == {1: "first\nline two", 2: "second page"}
    assert list(pages) == [1, 2]


def test_count_pages_counts_distinct_pages():
    blocks = [{"BlockType": "PAGE", "Page": 1}, line("a", 1), line("b", 3), {"BlockType": "PAGE"}]
    assert count_pages(blocks) == 2


def test_parse_results_blob_rejects_empty_and_malformed():
    with pytest.raises(ValueError):
        parse_results_blob(b"")
    with pytest.raises(ValueError):
        parse_results_blob(json.dumps({"pages": []}).encode())

    assert parse_results_blob(json.dumps({"Blocks": []}).encode()) == {"Blocks": []}
