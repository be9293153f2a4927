"""Document upload, tracking and ingestion

Documents move through UPLOAD_PENDING -> EXTRACTION_PENDING ->
EXTRACTION_IN_PROGRESS -> EXTRACTION_COMPLETED -> INDEXED, with failure
states reachable from any non-terminal state.
"""

from docintel.documents.models import (
    DocumentRecord,
    DocumentStatus,
    ProcessingJob,
    Chunk,
    IndexedChunk,
)

__all__ = [
    'DocumentRecord',
    'DocumentStatus',
    'ProcessingJob',
    'Chunk',
    'IndexedChunk',
]
