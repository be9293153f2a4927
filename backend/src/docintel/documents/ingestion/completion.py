"""Extraction completion: Textract SNS notification -> stored OCR result

Flow:
1. SNS notification from Textract job completion
2. Resolve the document (JobTag, falling back to the job id index)
3. Retrieve every result page from Textract
4. Store {"Blocks": [...]} under the results prefix
5. Mark the document EXTRACTION_COMPLETED, which the DynamoDB stream hands
   to the extraction indexer
"""

import asyncio
import json
import logging
from typing import List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from docintel.shared.config import StorageSettings
from docintel.shared.errors import DependencyError, classify_client_error
from docintel.documents.models import DocumentRecord, DocumentStatus, JobStatus
from docintel.documents.services.ledger import StatusLedger
from docintel.documents.ingestion.batch import BatchResult, run_records
from docintel.documents.ingestion.processors import count_pages, results_key_for

logger = logging.getLogger(__name__)


class ExtractionCompletionHandler:
    """Persists finished Textract output and records the outcome."""

    def __init__(self, s3_client, textract_client, ledger: StatusLedger, storage: StorageSettings):
        self._s3 = s3_client
        self._textract = textract_client
        self._ledger = ledger
        self._storage = storage

    async def handle_event(self, event: dict) -> BatchResult:
        """Process every notification of an SNS event. Never raises."""
        records = event.get("Records") or []
        logger.info(f"Extraction completion received {len(records)} notifications")
        return await run_records(records, self.process_record, "extraction-complete")

    async def process_record(self, record: dict) -> Optional[str]:
        """
        Handle one Textract completion notification.

        Returns:
            The document id, or None if the notification was ignored

        Raises:
            DependencyError: Textract results could not be read or stored
            PersistenceError: The status store rejected a write
        """
        message = self._parse_message(record)
        if message is None:
            return None

        job_id = message["JobId"]
        status = message.get("Status", "")

        document = await self._resolve_document(job_id, message.get("JobTag"))
        if document is None:
            logger.warning(f"No document found for Textract job {job_id}; ignoring notification")
            return None

        if document.status is not DocumentStatus.EXTRACTION_IN_PROGRESS:
            logger.info(
                f"Document {document.document_id} is {document.status.value}; "
                f"ignoring completion of job {job_id}"
            )
            return None

        if status != "SUCCEEDED":
            error_message = message.get("StatusMessage") or f"Textract job {job_id} finished with status {status}"
            await self._ledger.mark_failed(document.document_id, DocumentStatus.EXTRACTION_FAILED, error_message)
            await self._ledger.update_processing_job(job_id, JobStatus.FAILED)
            logger.warning(f"Textract job {job_id} failed for document {document.document_id}: {status}")
            return document.document_id

        try:
            blocks = await self._fetch_blocks(job_id)
            results_key = await self._store_blocks(document, blocks)
        except DependencyError as e:
            await self._ledger.mark_failed(document.document_id, DocumentStatus.EXTRACTION_FAILED, str(e))
            await self._ledger.update_processing_job(job_id, JobStatus.FAILED)
            raise

        page_count = count_pages(blocks)
        await self._ledger.mark_extraction_completed(document.document_id, page_count)
        await self._ledger.update_processing_job(job_id, JobStatus.COMPLETED, page_count)

        logger.info(
            f"Textract results stored for document {document.document_id}: "
            f"{len(blocks)} blocks, {page_count} pages, key={results_key}"
        )
        return document.document_id

    @staticmethod
    def _parse_message(record: dict) -> Optional[dict]:
        raw = (record.get("Sns") or {}).get("Message")
        if not raw:
            logger.warning("SNS record has no message")
            return None
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring SNS message that is not JSON: {e}")
            return None
        if not isinstance(message, dict) or not message.get("JobId"):
            logger.warning("Ignoring SNS message without a JobId")
            return None
        return message

    async def _resolve_document(self, job_id: str, job_tag: Optional[str]) -> Optional[DocumentRecord]:
        # The trigger tags every job with its document id
        if job_tag:
            document = await self._ledger.get_document(job_tag)
            if document is not None and document.extraction_job_id == job_id:
                return document
        return await self._ledger.find_by_extraction_job(job_id)

    async def _fetch_blocks(self, job_id: str) -> List[dict]:
        """Read every result page of a finished text detection job."""
        blocks: List[dict] = []
        next_token: Optional[str] = None

        while True:
            params = {"JobId": job_id}
            if next_token:
                params["NextToken"] = next_token
            try:
                response = await asyncio.to_thread(self._textract.get_document_text_detection, **params)
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Failed to read Textract results for job {job_id}: {e}")
                raise classify_client_error(e, "textract") from e

            blocks.extend(response.get("Blocks", []))
            next_token = response.get("NextToken")
            if not next_token:
                break

        logger.debug(f"Retrieved {len(blocks)} blocks for Textract job {job_id}")
        return blocks

    async def _store_blocks(self, document: DocumentRecord, blocks: List[dict]) -> str:
        key = results_key_for(document.object_key, self._storage.results_prefix)
        try:
            await asyncio.to_thread(
                self._s3.put_object,
                Bucket=document.bucket,
                Key=key,
                Body=json.dumps({"Blocks": blocks}).encode("utf-8"),
                ContentType="application/json",
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to store Textract results at s3://{document.bucket}/{key}: {e}")
            raise classify_client_error(e, "s3") from e
        return key
