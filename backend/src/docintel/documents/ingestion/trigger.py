"""Ingestion trigger: S3 ObjectCreated -> Textract

Validates each newly created object against what S3 actually stored, puts
its DocumentRecord into EXTRACTION_PENDING and starts an asynchronous
Textract text detection job with bounded exponential-backoff retry.

Textract reports completion on the configured SNS topic, which feeds the
extraction completion handler.
"""

import asyncio
import logging
import re
import uuid
from typing import Awaitable, Callable, Optional, Tuple
from urllib.parse import unquote_plus

from botocore.exceptions import BotoCoreError, ClientError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from docintel.shared.config import StorageSettings, TextractSettings, ValidationSettings
from docintel.shared.errors import (
    DocumentValidationError,
    PersistenceError,
    classify_client_error,
    client_error_code,
)
from docintel.documents.models import DocumentRecord, DocumentStatus, ProcessingJob
from docintel.documents.services.filenames import sanitize_filename
from docintel.documents.services.ledger import StatusLedger
from docintel.documents.ingestion.batch import BatchResult, run_records

logger = logging.getLogger(__name__)

# Textract errors that will fail the same way on every attempt
NON_RETRYABLE_TEXTRACT_ERRORS = frozenset({
    "InvalidParameterException",
    "InvalidS3ObjectException",
    "UnsupportedDocumentException",
    "BadDocumentException",
    "DocumentTooLargeException",
    "AccessDeniedException",
    "IdempotentParameterMismatchException",
})


def _is_retryable_start_error(error: BaseException) -> bool:
    return client_error_code(error) not in NON_RETRYABLE_TEXTRACT_ERRORS

_UUID = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"


class IngestionTrigger:
    """Starts OCR for validated uploads."""

    def __init__(
        self,
        s3_client,
        textract_client,
        ledger: StatusLedger,
        storage: StorageSettings,
        textract: TextractSettings,
        validation: ValidationSettings,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._s3 = s3_client
        self._textract = textract_client
        self._ledger = ledger
        self._storage = storage
        self._textract_settings = textract
        self._validation = validation
        self._sleep = sleep
        self._issued_key = re.compile(rf"^{re.escape(storage.upload_prefix)}/({_UUID})/[^/]+$")

    async def handle_event(self, event: dict) -> BatchResult:
        """Process every record of an S3 notification. Never raises."""
        records = event.get("Records") or []
        logger.info(f"Ingestion trigger received {len(records)} records")
        return await run_records(records, self.process_record, "ingestion-trigger")

    async def process_record(self, record: dict) -> Optional[str]:
        """
        Validate one S3 record and start text detection for it.

        Returns:
            The Textract job id, or None if the record was skipped

        Raises:
            DependencyError: S3 or Textract could not be reached
            PersistenceError: The status store rejected a write
        """
        try:
            bucket, key = self._parse_record(record)
        except DocumentValidationError as e:
            logger.warning(f"Skipping malformed S3 record: {e}")
            return None

        try:
            content_type, file_size = await self._inspect_object(bucket, key)
        except DocumentValidationError as e:
            logger.warning(f"Skipping s3://{bucket}/{key}: {e}")
            return None

        document_id = await self._claim_document(bucket, key, content_type, file_size)
        if document_id is None:
            return None

        job_id = await self._start_extraction(document_id, bucket, key)

        try:
            await self._ledger.record_extraction_started(document_id, job_id)
        except PersistenceError as e:
            logger.error(f"Textract job {job_id} started but document {document_id} could not record it: {e}")
            await self._mark_start_failed(document_id, f"Could not record extraction job {job_id}: {e}")
            raise
        await self._ledger.record_processing_job(
            ProcessingJob(
                extraction_job_id=job_id,
                document_id=document_id,
                bucket=bucket,
                object_key=key,
            )
        )

        logger.info(f"Textract job {job_id} started for document {document_id} (s3://{bucket}/{key})")
        return job_id

    @staticmethod
    def _parse_record(record: dict) -> Tuple[str, str]:
        event_name = record.get("eventName", "")
        if not event_name.startswith("ObjectCreated:"):
            raise DocumentValidationError(f"Unsupported event {event_name or '<missing>'}")

        s3 = record.get("s3") or {}
        bucket = (s3.get("bucket") or {}).get("name")
        raw_key = (s3.get("object") or {}).get("key")
        if not bucket or not raw_key:
            raise DocumentValidationError("Record has no bucket name or object key")

        # Keys arrive URL-encoded with spaces as '+'
        return bucket, unquote_plus(raw_key)

    async def _inspect_object(self, bucket: str, key: str) -> Tuple[str, int]:
        """Read the stored object's real content type and size and enforce the upload rules."""
        try:
            head = await asyncio.to_thread(self._s3.head_object, Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"head_object failed for s3://{bucket}/{key}: {e}")
            raise classify_client_error(e, "s3") from e

        content_type = (head.get("ContentType") or "").split(";")[0].strip().lower()
        file_size = int(head.get("ContentLength") or 0)

        if content_type != self._validation.allowed_content_type:
            raise DocumentValidationError(
                f"Invalid content type {content_type or '<none>'}",
                error="INVALID_CONTENT_TYPE",
            )
        if file_size == 0:
            raise DocumentValidationError("File is empty", error="EMPTY_FILE")
        if file_size > self._validation.max_file_size_bytes:
            raise DocumentValidationError(
                f"File size {file_size} exceeds maximum {self._validation.max_file_size_bytes}",
                error="FILE_TOO_LARGE",
            )

        return content_type, file_size

    async def _claim_document(self, bucket: str, key: str, content_type: str, file_size: int) -> Optional[str]:
        """
        Put the document for this object into EXTRACTION_PENDING.

        A key issued by the upload coordinator adopts the record created with
        it. Anything else gets a new record. Returns None for a redelivered
        notification whose extraction has already started.
        """
        match = self._issued_key.match(key)
        if match:
            existing = await self._ledger.get_document(match.group(1))
            if existing is not None and existing.bucket == bucket and existing.object_key == key:
                if existing.status not in (DocumentStatus.UPLOAD_PENDING, DocumentStatus.EXTRACTION_PENDING):
                    logger.info(
                        f"Document {existing.document_id} already {existing.status.value}; "
                        f"skipping duplicate notification"
                    )
                    return None
                await self._ledger.advance_to_extraction_pending(existing.document_id, content_type, file_size)
                return existing.document_id

        document_id = str(uuid.uuid4())
        await self._ledger.create_document(
            DocumentRecord(
                document_id=document_id,
                filename=sanitize_filename(key.rsplit("/", 1)[-1], self._validation.max_filename_length),
                bucket=bucket,
                object_key=key,
                status=DocumentStatus.EXTRACTION_PENDING,
                content_type=content_type,
                file_size=file_size,
            )
        )
        logger.info(f"Created document {document_id} for unissued key s3://{bucket}/{key}")
        return document_id

    async def _start_extraction(self, document_id: str, bucket: str, key: str) -> str:
        """
        Start text detection, retrying with exponential backoff.

        Raises:
            DependencyError: All attempts failed; the document is marked
                EXTRACTION_START_FAILED first
        """
        params = {
            "DocumentLocation": {"S3Object": {"Bucket": bucket, "Name": key}},
            # Same token on every attempt, so a retried start returns the original job
            "ClientRequestToken": document_id,
            "JobTag": document_id,
        }
        if self._textract_settings.notifications_enabled:
            params["NotificationChannel"] = {
                "SNSTopicArn": self._textract_settings.sns_topic_arn,
                "RoleArn": self._textract_settings.role_arn,
            }

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self._textract_settings.max_attempts)),
            wait=wait_exponential(multiplier=self._textract_settings.retry_base_delay),
            retry=retry_if_exception(_is_retryable_start_error),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            response = await retrying(
                asyncio.to_thread, self._textract.start_document_text_detection, **params
            )
        except Exception as e:
            logger.error(f"Failed to start Textract for document {document_id}: {e}")
            await self._mark_start_failed(document_id, str(e))
            raise classify_client_error(e, "textract") from e

        return response["JobId"]

    async def _mark_start_failed(self, document_id: str, message: str) -> None:
        try:
            await self._ledger.mark_failed(document_id, DocumentStatus.EXTRACTION_START_FAILED, message)
        except Exception as e:
            logger.error(f"Could not mark document {document_id} as EXTRACTION_START_FAILED: {e}")
