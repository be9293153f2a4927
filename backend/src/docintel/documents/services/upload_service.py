"""Upload coordination

Issues a short-lived presigned PUT URL for one generated object key and
records the document before the URL is handed back, so a client that
uploads immediately can never race ahead of its tracking record.

Flow:
1. Client requests an upload URL
2. Browser uploads directly to S3 with the presigned URL
3. S3 ObjectCreated notification triggers the ingestion trigger
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from docintel.shared.config import StorageSettings, ValidationSettings
from docintel.shared.errors import DependencyError, DocumentValidationError, RateLimitExceededError
from docintel.shared.rate_limit import RateLimiter
from docintel.documents.models import DocumentRecord, DocumentStatus
from docintel.documents.services.filenames import validate_filename
from docintel.documents.services.ledger import StatusLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadCredential:
    upload_url: str
    document_id: str
    object_key: str
    expires_in: int


def build_object_key(upload_prefix: str, document_id: str, filename: str) -> str:
    """Object key for an upload: <prefix>/<documentId>/<filename>"""
    return f"{upload_prefix}/{document_id}/{filename}"


class UploadCoordinator:
    """Issues upload credentials and creates the initial tracking record."""

    def __init__(
        self,
        s3_client,
        ledger: StatusLedger,
        rate_limiter: RateLimiter,
        storage: StorageSettings,
        validation: ValidationSettings,
    ):
        self._s3 = s3_client
        self._ledger = ledger
        self._rate_limiter = rate_limiter
        self._storage = storage
        self._validation = validation

    async def create_upload(
        self,
        client_id: str,
        filename: str,
        content_type: Optional[str] = None,
    ) -> UploadCredential:
        """
        Issue a presigned upload URL for a single document.

        Args:
            client_id: Caller identity, used for rate limiting
            filename: Requested filename (untrusted)
            content_type: Declared MIME type (untrusted; re-verified after upload)

        Returns:
            UploadCredential

        Raises:
            RateLimitExceededError: Too many credentials issued to this client
            DocumentValidationError: Bad filename or content type
            DependencyError: The URL could not be signed
            PersistenceError: The tracking record could not be written
        """
        if not await asyncio.to_thread(self._rate_limiter.try_acquire, client_id):
            logger.warning(f"Rate limit exceeded for client {client_id}")
            raise RateLimitExceededError("Too many requests. Please try again later.")

        allowed_type = self._validation.allowed_content_type
        if content_type and content_type.split(";")[0].strip().lower() != allowed_type:
            raise DocumentValidationError(
                f"Content type must be {allowed_type}",
                error="INVALID_CONTENT_TYPE",
            )

        sanitized = validate_filename(
            filename,
            self._validation.allowed_extensions,
            self._validation.max_filename_length,
        )

        document_id = str(uuid.uuid4())
        object_key = build_object_key(self._storage.upload_prefix, document_id, sanitized)
        upload_url = self._presign(object_key, allowed_type)

        record = DocumentRecord(
            document_id=document_id,
            filename=sanitized,
            bucket=self._storage.documents_bucket,
            object_key=object_key,
            status=DocumentStatus.UPLOAD_PENDING,
            content_type=allowed_type,
        )
        # Must land before the URL is returned; failures propagate and no URL is issued
        await self._ledger.create_document(record)

        logger.info(f"Upload URL generated: documentId={document_id}, key={object_key}, client={client_id}")

        return UploadCredential(
            upload_url=upload_url,
            document_id=document_id,
            object_key=object_key,
            expires_in=self._storage.presigned_url_expiry,
        )

    def _presign(self, object_key: str, content_type: str) -> str:
        try:
            return self._s3.generate_presigned_url(
                "put_object",
                Params={
                    "Bucket": self._storage.documents_bucket,
                    "Key": object_key,
                    "ContentType": content_type,
                },
                ExpiresIn=self._storage.presigned_url_expiry,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to generate presigned URL for {object_key}: {e}")
            raise DependencyError(f"Failed to generate upload URL: {e}", service="s3", cause=e) from e
