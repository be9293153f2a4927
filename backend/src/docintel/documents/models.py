"""Document data models

Domain records are dataclasses with explicit camelCase DynamoDB mappings;
API request/response bodies are pydantic models.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


def format_timestamp(moment: datetime) -> str:
    """
    UTC ISO 8601 string with a Z suffix.

    Always carries microseconds so that stored timestamps compare correctly
    as strings.
    """
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string with a Z suffix"""
    return format_timestamp(datetime.now(timezone.utc))


class DocumentStatus(str, Enum):
    """Document lifecycle states"""

    UPLOAD_PENDING = "UPLOAD_PENDING"
    EXTRACTION_PENDING = "EXTRACTION_PENDING"
    EXTRACTION_IN_PROGRESS = "EXTRACTION_IN_PROGRESS"
    EXTRACTION_COMPLETED = "EXTRACTION_COMPLETED"
    INDEXED = "INDEXED"

    # Failure states
    EXTRACTION_START_FAILED = "EXTRACTION_START_FAILED"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    INDEXING_FAILED = "INDEXING_FAILED"

    @property
    def is_failure(self) -> bool:
        return self in FAILURE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self is DocumentStatus.INDEXED or self in FAILURE_STATUSES


FAILURE_STATUSES = frozenset({
    DocumentStatus.EXTRACTION_START_FAILED,
    DocumentStatus.EXTRACTION_FAILED,
    DocumentStatus.INDEXING_FAILED,
})

# Main line of the lifecycle, in order
PROGRESSION = (
    DocumentStatus.UPLOAD_PENDING,
    DocumentStatus.EXTRACTION_PENDING,
    DocumentStatus.EXTRACTION_IN_PROGRESS,
    DocumentStatus.EXTRACTION_COMPLETED,
    DocumentStatus.INDEXED,
)


class JobStatus(str, Enum):
    """ProcessingJob states (observability only)"""

    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass
class DocumentRecord:
    """
    Tracking record for one uploaded file.

    content_type and file_size hold what S3 reported at validation time,
    never what the client claimed.
    """

    document_id: str
    filename: str
    bucket: str
    object_key: str
    status: DocumentStatus
    content_type: Optional[str] = None
    file_size: Optional[int] = None
    extraction_job_id: Optional[str] = None
    error_message: Optional[str] = None
    page_count: Optional[int] = None
    chunk_count: Optional[int] = None
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict:
        """Convert to dictionary for DynamoDB storage."""
        item = {
            "documentId": self.document_id,
            "filename": self.filename,
            "bucket": self.bucket,
            "objectKey": self.object_key,
            "status": self.status.value,
            "contentType": self.content_type,
            "fileSize": self.file_size,
            "extractionJobId": self.extraction_job_id,
            "errorMessage": self.error_message,
            "pageCount": self.page_count,
            "chunkCount": self.chunk_count,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        return {key: value for key, value in item.items() if value is not None}

    @classmethod
    def from_dict(cls, data: dict) -> "DocumentRecord":
        """Create from dictionary (DynamoDB item or stream image)."""
        return cls(
            document_id=data.get("documentId", ""),
            filename=data.get("filename", ""),
            bucket=data.get("bucket", ""),
            object_key=data.get("objectKey", ""),
            status=DocumentStatus(data.get("status", DocumentStatus.UPLOAD_PENDING.value)),
            content_type=data.get("contentType"),
            file_size=_optional_int(data.get("fileSize")),
            extraction_job_id=data.get("extractionJobId"),
            error_message=data.get("errorMessage"),
            page_count=_optional_int(data.get("pageCount")),
            chunk_count=_optional_int(data.get("chunkCount")),
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
        )


@dataclass
class ProcessingJob:
    """Best-effort record of one accepted Textract job."""

    extraction_job_id: str
    document_id: str
    bucket: str
    object_key: str
    status: JobStatus = JobStatus.IN_PROGRESS
    page_count: Optional[int] = None
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict:
        item = {
            "extractionJobId": self.extraction_job_id,
            "documentId": self.document_id,
            "bucket": self.bucket,
            "objectKey": self.object_key,
            "status": self.status.value,
            "pageCount": self.page_count,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        return {key: value for key, value in item.items() if value is not None}


@dataclass(frozen=True)
class Chunk:
    """A window of one page's text; the unit of embedding and indexing."""

    text: str
    page_number: int
    sequence_index: int


def make_chunk_id(document_id: str, sequence_index: int) -> str:
    """Deterministic vector key, so re-indexing overwrites instead of duplicating."""
    return f"{document_id}-chunk-{sequence_index}"


@dataclass
class IndexedChunk:
    """The record written to the vector index."""

    document_id: str
    filename: str
    sequence_index: int
    content: str
    embedding: List[float]
    page_number: int
    created_at: str = field(default_factory=utc_now_iso)

    @property
    def chunk_id(self) -> str:
        return make_chunk_id(self.document_id, self.sequence_index)

    def metadata(self) -> dict:
        """Non-vector fields stored alongside the embedding"""
        return {
            "chunkId": self.chunk_id,
            "documentId": self.document_id,
            "filename": self.filename,
            "sequenceIndex": self.sequence_index,
            "content": self.content,
            "pageNumber": self.page_number,
            "createdAt": self.created_at,
        }


def _optional_int(value) -> Optional[int]:
    # DynamoDB returns numbers as Decimal
    return int(value) if value is not None else None


# =========================================================================
# API models
# =========================================================================

class UploadUrlRequest(BaseModel):
    """Request body for an upload credential"""
    model_config = ConfigDict(populate_by_name=True)

    filename: str = Field(..., min_length=1, description="Name of the file to upload")
    content_type: Optional[str] = Field(None, alias="contentType", description="Declared MIME type")


class UploadUrlResponse(BaseModel):
    """Presigned upload credential"""
    model_config = ConfigDict(populate_by_name=True)

    upload_url: str = Field(..., alias="uploadUrl", description="Presigned S3 PUT URL")
    document_id: str = Field(..., alias="documentId", description="Tracking identifier")
    object_key: str = Field(..., alias="objectKey", description="S3 key the URL is scoped to")
    expires_in: int = Field(..., alias="expiresIn", description="Seconds until the URL expires")


class DocumentStatusResponse(BaseModel):
    """Current tracking state of a document"""
    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(..., alias="documentId")
    filename: str
    status: DocumentStatus
    error_message: Optional[str] = Field(None, alias="errorMessage")
    page_count: Optional[int] = Field(None, alias="pageCount")
    chunk_count: Optional[int] = Field(None, alias="chunkCount")
    created_at: str = Field(..., alias="createdAt")
    updated_at: str = Field(..., alias="updatedAt")

    @classmethod
    def from_record(cls, record: DocumentRecord) -> "DocumentStatusResponse":
        return cls(
            document_id=record.document_id,
            filename=record.filename,
            status=record.status,
            error_message=record.error_message,
            page_count=record.page_count,
            chunk_count=record.chunk_count,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
