"""Pipeline configuration

All environment variable access is centralised here. Settings are loaded once
per cold start and handed to each stage explicitly.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, str(default)))


def _env_optional(name: str) -> Optional[str]:
    value = os.environ.get(name, "").strip()
    return value or None


@dataclass(frozen=True)
class AwsSettings:
    region: str = "us-east-1"
    profile: Optional[str] = None


@dataclass(frozen=True)
class StorageSettings:
    documents_bucket: str = ""
    upload_prefix: str = "uploads"
    results_prefix: str = "textract-results"
    presigned_url_expiry: int = 300


@dataclass(frozen=True)
class TableSettings:
    documents_table: str = "docintel-documents"
    jobs_table: str = "docintel-jobs"
    rate_limit_table: Optional[str] = None


@dataclass(frozen=True)
class TextractSettings:
    sns_topic_arn: Optional[str] = None
    role_arn: Optional[str] = None
    max_attempts: int = 3
    retry_base_delay: float = 0.3  # seconds

    @property
    def notifications_enabled(self) -> bool:
        return bool(self.sns_topic_arn and self.role_arn)


@dataclass(frozen=True)
class EmbeddingSettings:
    model_id: str = "amazon.titan-embed-text-v2:0"
    dimensions: int = 1024


@dataclass(frozen=True)
class VectorIndexSettings:
    vector_bucket: str = ""
    index_name: str = "docintel-vectors"


@dataclass(frozen=True)
class ChunkingSettings:
    chunk_size: int = 1000  # characters
    overlap: int = 100

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if not 0 <= self.overlap < self.chunk_size:
            raise ValueError(
                f"overlap must be in [0, chunk_size); got overlap={self.overlap}, chunk_size={self.chunk_size}"
            )


@dataclass(frozen=True)
class ValidationSettings:
    max_filename_length: int = 100
    max_file_size_bytes: int = 52428800  # 50MB
    allowed_extensions: Tuple[str, ...] = (".pdf",)
    allowed_content_type: str = "application/pdf"
    rate_limit_max: int = 10  # per window
    rate_limit_window_seconds: int = 60


@dataclass(frozen=True)
class StalenessSettings:
    extraction_timeout_minutes: int = 60


@dataclass(frozen=True)
class PipelineSettings:
    """Root settings object passed to every stage"""

    aws: AwsSettings = field(default_factory=AwsSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    tables: TableSettings = field(default_factory=TableSettings)
    textract: TextractSettings = field(default_factory=TextractSettings)
    embedding: EmbeddingSettings = field(default_factory=EmbeddingSettings)
    vector_index: VectorIndexSettings = field(default_factory=VectorIndexSettings)
    chunking: ChunkingSettings = field(default_factory=ChunkingSettings)
    validation: ValidationSettings = field(default_factory=ValidationSettings)
    staleness: StalenessSettings = field(default_factory=StalenessSettings)

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "PipelineSettings":
        """
        Build settings from environment variables.

        Args:
            dotenv: Load a local .env file first (local development)

        Returns:
            PipelineSettings instance

        Raises:
            ValueError: If a numeric variable is malformed or chunking is inconsistent
        """
        if dotenv:
            load_dotenv()

        extensions = os.environ.get("ALLOWED_EXTENSIONS", ".pdf")

        settings = cls(
            aws=AwsSettings(
                region=os.environ.get("AWS_REGION", os.environ.get("AWS_DEFAULT_REGION", "us-east-1")),
                profile=_env_optional("AWS_PROFILE"),
            ),
            storage=StorageSettings(
                documents_bucket=os.environ.get("S3_DOCUMENTS_BUCKET", ""),
                upload_prefix=os.environ.get("S3_UPLOAD_PREFIX", "uploads").strip("/"),
                results_prefix=os.environ.get("S3_RESULTS_PREFIX", "textract-results").strip("/"),
                presigned_url_expiry=_env_int("S3_PRESIGNED_URL_EXPIRY", 300),
            ),
            tables=TableSettings(
                documents_table=os.environ.get("DYNAMODB_METADATA_TABLE", "docintel-documents"),
                jobs_table=os.environ.get("DYNAMODB_JOBS_TABLE", "docintel-jobs"),
                rate_limit_table=_env_optional("DYNAMODB_RATE_LIMIT_TABLE"),
            ),
            textract=TextractSettings(
                sns_topic_arn=_env_optional("TEXTRACT_SNS_TOPIC_ARN"),
                role_arn=_env_optional("TEXTRACT_ROLE_ARN"),
                max_attempts=_env_int("TEXTRACT_MAX_ATTEMPTS", 3),
                retry_base_delay=_env_float("TEXTRACT_RETRY_BASE_DELAY", 0.3),
            ),
            embedding=EmbeddingSettings(
                model_id=os.environ.get("BEDROCK_EMBEDDING_MODEL_ID", "amazon.titan-embed-text-v2:0"),
                dimensions=_env_int("BEDROCK_EMBEDDING_DIMENSIONS", 1024),
            ),
            vector_index=VectorIndexSettings(
                vector_bucket=os.environ.get("S3_VECTOR_BUCKET", ""),
                index_name=os.environ.get("S3_VECTOR_INDEX_NAME", "docintel-vectors"),
            ),
            chunking=ChunkingSettings(
                chunk_size=_env_int("CHUNK_SIZE", 1000),
                overlap=_env_int("CHUNK_OVERLAP", 100),
            ),
            validation=ValidationSettings(
                max_filename_length=_env_int("MAX_FILENAME_LENGTH", 100),
                max_file_size_bytes=_env_int("MAX_FILE_SIZE_BYTES", 52428800),
                allowed_extensions=tuple(
                    ext.strip().lower() for ext in extensions.split(",") if ext.strip()
                ),
                rate_limit_max=_env_int("UPLOAD_RATE_LIMIT_MAX", 10),
                rate_limit_window_seconds=_env_int("UPLOAD_RATE_LIMIT_WINDOW_SECONDS", 60),
            ),
            staleness=StalenessSettings(
                extraction_timeout_minutes=_env_int("EXTRACTION_TIMEOUT_MINUTES", 60),
            ),
        )

        if not settings.storage.documents_bucket:
            logger.warning("S3_DOCUMENTS_BUCKET not set. Upload credentials will not be usable.")

        return settings
