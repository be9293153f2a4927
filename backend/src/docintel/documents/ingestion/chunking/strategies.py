"""Text chunking strategies

Sliding-window chunking over character offsets.
"""

import logging
from typing import Dict, Iterator, List, Tuple

from docintel.documents.models import Chunk

logger = logging.getLogger(__name__)


def iter_windows(text_length: int, chunk_size: int, overlap: int) -> Iterator[Tuple[int, int]]:
    """
    Yield (start, end) offsets of the raw windows covering a text.

    Windows start at 0 and advance by chunk_size - overlap until the start
    reaches the text length, so consecutive windows share `overlap`
    characters and every offset in [0, text_length) is covered.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if not 0 <= overlap < chunk_size:
        raise ValueError(f"overlap must be in [0, chunk_size), got {overlap}")

    step = chunk_size - overlap
    for start in range(0, text_length, step):
        yield start, min(start + chunk_size, text_length)


def chunk_text(text: str, chunk_size: int, overlap: int) -> List[str]:
    """
    Split text into overlapping windows.

    Each window is trimmed; windows that are empty after trimming are dropped.
    """
    chunks = []
    for start, end in iter_windows(len(text), chunk_size, overlap):
        window = text[start:end].strip()
        if window:
            chunks.append(window)
    return chunks


def chunk_pages(pages: Dict[int, str], chunk_size: int, overlap: int) -> List[Chunk]:
    """
    Chunk every page independently, in page order.

    Sequence indexes are assigned globally across pages.
    """
    chunks: List[Chunk] = []
    for page_number in sorted(pages):
        for text in chunk_text(pages[page_number], chunk_size, overlap):
            chunks.append(Chunk(text=text, page_number=page_number, sequence_index=len(chunks)))

    logger.debug(f"Chunked {len(pages)} pages into {len(chunks)} chunks")
    return chunks
