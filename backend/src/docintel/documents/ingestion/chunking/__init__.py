"""Text chunking for embedding generation"""

from .strategies import chunk_text, chunk_pages, iter_windows

__all__ = [
    'chunk_text',
    'chunk_pages',
    'iter_windows',
]
