"""Textract output processing"""

from .textract_processor import (
    results_key_for,
    extract_text_by_page,
    count_pages,
    parse_results_blob,
)

__all__ = [
    'results_key_for',
    'extract_text_by_page',
    'count_pages',
    'parse_results_blob',
]
