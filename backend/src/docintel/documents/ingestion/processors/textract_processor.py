"""Textract output handling

Textract results are stored as a JSON blob of the form {"Blocks": [...]}
next to the uploaded document, under the results prefix.
"""

import json
import logging
import re
from collections import defaultdict
from typing import Dict, List

logger = logging.getLogger(__name__)

_PDF_SUFFIX = re.compile(r"\.pdf$", re.IGNORECASE)


def results_key_for(object_key: str, results_prefix: str = "textract-results") -> str:
    """
    S3 key of the stored Textract result for an uploaded document.

    uploads/<id>/contract.pdf -> textract-results/uploads/<id>/contract-textract.json
    """
    stem = _PDF_SUFFIX.sub("", object_key)
    return f"{results_prefix}/{stem}-textract.json"


def extract_text_by_page(results: dict) -> Dict[int, str]:
    """
    Group text-bearing LINE blocks by page.

    Lines keep their order within a page and are joined with newlines. Pages
    with no text-bearing lines are omitted. The returned dict iterates in
    ascending page order.
    """
    lines_by_page: Dict[int, List[str]] = defaultdict(list)

    for block in results.get("Blocks", []):
        if block.get("BlockType") != "LINE":
            continue
        text = block.get("Text")
        page = block.get("Page")
        if text and page:
            lines_by_page[int(page)].append(text)

    return {page: "\n".join(lines_by_page[page]) for page in sorted(lines_by_page)}


def count_pages(blocks: List[dict]) -> int:
    """Number of distinct pages referenced by a set of blocks"""
    return len({block["Page"] for block in blocks if block.get("Page")})


def parse_results_blob(body: bytes) -> dict:
    """
    Decode a stored Textract result.

    Raises:
        ValueError: If the blob is empty or not a {"Blocks": [...]} document
    """
    if not body:
        raise ValueError("Empty Textract results")

    results = json.loads(body)
    if not isinstance(results, dict) or not isinstance(results.get("Blocks"), list):
        raise ValueError("Textract results are missing the Blocks list")
    return results
