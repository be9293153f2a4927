"""Status ledger: the single source of truth for document and job state

Every stage reads and writes document state exclusively through a
StatusLedger. Lifecycle rules live in the base class so that the DynamoDB and
in-memory stores enforce identical transitions.
"""

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, FrozenSet, List, Optional

from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from docintel.shared.errors import PersistenceError, StatusTransitionError, client_error_code
from docintel.documents.models import (
    FAILURE_STATUSES,
    PROGRESSION,
    DocumentRecord,
    DocumentStatus,
    JobStatus,
    ProcessingJob,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

NON_TERMINAL_STATUSES = frozenset(status for status in DocumentStatus if not status.is_terminal)


def allowed_sources(target: DocumentStatus) -> FrozenSet[DocumentStatus]:
    """
    States from which `target` may be entered.

    Re-entering the current state is always allowed so that redelivered
    events are idempotent no-ops.
    """
    if target in FAILURE_STATUSES:
        return NON_TERMINAL_STATUSES | {target}

    position = PROGRESSION.index(target)
    if position == 0:
        # UPLOAD_PENDING is only ever written by create_document
        return frozenset()
    return frozenset({PROGRESSION[position - 1], target})


class StatusLedger(ABC):
    """Abstract interface for document/job state storage."""

    # =========================================================================
    # Storage primitives
    # =========================================================================

    @abstractmethod
    async def create_document(self, record: DocumentRecord) -> None:
        """
        Durably write a new DocumentRecord.

        Raises:
            PersistenceError: If the write fails or the document already exists
        """
        pass

    @abstractmethod
    async def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        pass

    @abstractmethod
    async def find_by_extraction_job(self, extraction_job_id: str) -> Optional[DocumentRecord]:
        pass

    @abstractmethod
    async def list_by_status(self, status: DocumentStatus, updated_before: str) -> List[DocumentRecord]:
        """Documents currently in `status` whose last transition is older than `updated_before`."""
        pass

    @abstractmethod
    async def _apply_transition(
        self,
        document_id: str,
        target: DocumentStatus,
        sources: FrozenSet[DocumentStatus],
        attributes: Dict[str, object],
    ) -> None:
        """Atomically move a document to `target` if its status is in `sources`."""
        pass

    @abstractmethod
    async def _put_job(self, job: ProcessingJob) -> None:
        pass

    @abstractmethod
    async def _update_job(self, extraction_job_id: str, status: JobStatus, page_count: Optional[int]) -> None:
        pass

    # =========================================================================
    # Lifecycle transitions
    # =========================================================================

    async def transition(
        self,
        document_id: str,
        target: DocumentStatus,
        *,
        error_message: Optional[str] = None,
        extraction_job_id: Optional[str] = None,
        content_type: Optional[str] = None,
        file_size: Optional[int] = None,
        page_count: Optional[int] = None,
        chunk_count: Optional[int] = None,
    ) -> None:
        """
        Move a document to a new lifecycle state.

        errorMessage and updatedAt are written on every transition.

        Raises:
            StatusTransitionError: If the document is missing or the move is not allowed
            PersistenceError: If the status store write fails
        """
        if target is DocumentStatus.EXTRACTION_IN_PROGRESS and not extraction_job_id:
            raise ValueError("EXTRACTION_IN_PROGRESS requires an extraction job id")

        attributes: Dict[str, object] = {
            "errorMessage": error_message,
            "updatedAt": utc_now_iso(),
        }
        optional = {
            "extractionJobId": extraction_job_id,
            "contentType": content_type,
            "fileSize": file_size,
            "pageCount": page_count,
            "chunkCount": chunk_count,
        }
        attributes.update({name: value for name, value in optional.items() if value is not None})

        await self._apply_transition(document_id, target, allowed_sources(target), attributes)
        logger.info(f"Document {document_id} -> {target.value}")

    async def advance_to_extraction_pending(self, document_id: str, content_type: str, file_size: int) -> None:
        await self.transition(
            document_id,
            DocumentStatus.EXTRACTION_PENDING,
            content_type=content_type,
            file_size=file_size,
        )

    async def record_extraction_started(self, document_id: str, extraction_job_id: str) -> None:
        await self.transition(
            document_id,
            DocumentStatus.EXTRACTION_IN_PROGRESS,
            extraction_job_id=extraction_job_id,
        )

    async def mark_extraction_completed(self, document_id: str, page_count: int) -> None:
        await self.transition(document_id, DocumentStatus.EXTRACTION_COMPLETED, page_count=page_count)

    async def mark_failed(self, document_id: str, status: DocumentStatus, error_message: str) -> None:
        if status not in FAILURE_STATUSES:
            raise ValueError(f"{status.value} is not a failure state")
        await self.transition(document_id, status, error_message=error_message)

    async def mark_failed_from(
        self,
        document_id: str,
        expected: DocumentStatus,
        status: DocumentStatus,
        error_message: str,
    ) -> None:
        """
        Fail a document only if it is still in `expected`.

        Raises:
            StatusTransitionError: If the document has left `expected`
        """
        if status not in FAILURE_STATUSES:
            raise ValueError(f"{status.value} is not a failure state")
        if expected.is_terminal:
            raise ValueError(f"{expected.value} is terminal")

        attributes = {"errorMessage": error_message, "updatedAt": utc_now_iso()}
        await self._apply_transition(document_id, status, frozenset({expected}), attributes)
        logger.info(f"Document {document_id} {expected.value} -> {status.value}")

    async def try_mark_indexed(self, document_id: str, chunk_count: int) -> bool:
        """
        Best-effort advance to INDEXED. Never raises.

        Returns:
            True if the status was written
        """
        try:
            await self.transition(document_id, DocumentStatus.INDEXED, chunk_count=chunk_count)
            return True
        except Exception as e:
            logger.warning(f"Could not mark document {document_id} as INDEXED: {e}")
            return False

    # =========================================================================
    # Processing jobs (best-effort)
    # =========================================================================

    async def record_processing_job(self, job: ProcessingJob) -> bool:
        """
        Best-effort write of a ProcessingJob. Never raises.

        Returns:
            True if the record was written
        """
        try:
            await self._put_job(job)
            logger.info(f"Saved processing job {job.extraction_job_id} for document {job.document_id}")
            return True
        except Exception as e:
            logger.error(f"Failed to save processing job {job.extraction_job_id}: {e}")
            return False

    async def update_processing_job(
        self,
        extraction_job_id: str,
        status: JobStatus,
        page_count: Optional[int] = None,
    ) -> bool:
        """Best-effort ProcessingJob status update. Never raises."""
        try:
            await self._update_job(extraction_job_id, status, page_count)
            return True
        except Exception as e:
            logger.error(f"Failed to update processing job {extraction_job_id} to {status.value}: {e}")
            return False


class InMemoryStatusLedger(StatusLedger):
    """In-memory ledger (for local development and tests)."""

    def __init__(self):
        self._documents: Dict[str, DocumentRecord] = {}
        self._jobs: Dict[str, ProcessingJob] = {}
        self._lock = threading.Lock()

    @property
    def jobs(self) -> Dict[str, ProcessingJob]:
        return dict(self._jobs)

    async def create_document(self, record: DocumentRecord) -> None:
        with self._lock:
            if record.document_id in self._documents:
                raise PersistenceError(f"Document {record.document_id} already exists")
            self._documents[record.document_id] = replace(record)

    async def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        with self._lock:
            record = self._documents.get(document_id)
            return replace(record) if record else None

    async def find_by_extraction_job(self, extraction_job_id: str) -> Optional[DocumentRecord]:
        with self._lock:
            for record in self._documents.values():
                if record.extraction_job_id == extraction_job_id:
                    return replace(record)
        return None

    async def list_by_status(self, status: DocumentStatus, updated_before: str) -> List[DocumentRecord]:
        with self._lock:
            return [
                replace(record)
                for record in self._documents.values()
                if record.status is status and record.updated_at < updated_before
            ]

    async def _apply_transition(self, document_id, target, sources, attributes) -> None:
        with self._lock:
            record = self._documents.get(document_id)
            if record is None:
                raise StatusTransitionError(document_id, target.value)
            if record.status not in sources:
                raise StatusTransitionError(document_id, target.value, record.status.value)

            merged = {**record.to_dict(), **attributes, "status": target.value}
            self._documents[document_id] = DocumentRecord.from_dict(merged)

    async def _put_job(self, job: ProcessingJob) -> None:
        with self._lock:
            self._jobs[job.extraction_job_id] = replace(job)

    async def _update_job(self, extraction_job_id, status, page_count) -> None:
        with self._lock:
            job = self._jobs.get(extraction_job_id)
            if job is None:
                raise KeyError(extraction_job_id)
            job.status = status
            job.page_count = page_count if page_count is not None else job.page_count
            job.updated_at = utc_now_iso()


class DynamoDBStatusLedger(StatusLedger):
    """
    DynamoDB-backed ledger.

    Documents table: PK=DOCUMENT#<id>, SK=METADATA, with GSIs
    ExtractionJobIndex (GSI1PK=EXTRACTION_JOB#<jobId>) and
    StatusIndex (GSI2PK=STATUS#<status>, GSI2SK=updatedAt).
    The table's stream feeds the extraction indexer.

    Jobs table: PK=JOB#<extractionJobId>, SK=JOB.
    """

    def __init__(self, documents_table, jobs_table):
        # Table resources must not be shared across worker threads; their
        # low-level client can be, and accepts the same native values.
        self._documents_client = documents_table.meta.client
        self._documents_name = documents_table.name
        self._jobs_client = jobs_table.meta.client
        self._jobs_name = jobs_table.name

    @staticmethod
    def _document_key(document_id: str) -> dict:
        return {"PK": f"DOCUMENT#{document_id}", "SK": "METADATA"}

    @staticmethod
    def _job_key(extraction_job_id: str) -> dict:
        return {"PK": f"JOB#{extraction_job_id}", "SK": "JOB"}

    async def create_document(self, record: DocumentRecord) -> None:
        item = {
            **self._document_key(record.document_id),
            **record.to_dict(),
            "GSI2PK": f"STATUS#{record.status.value}",
            "GSI2SK": record.updated_at,
        }
        if record.extraction_job_id:
            item["GSI1PK"] = f"EXTRACTION_JOB#{record.extraction_job_id}"

        try:
            await asyncio.to_thread(
                self._documents_client.put_item,
                TableName=self._documents_name,
                Item=item,
                ConditionExpression="attribute_not_exists(PK)",
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to save document {record.document_id}: {e}")
            raise PersistenceError(f"Failed to save document {record.document_id}: {e}") from e

        logger.info(f"Document metadata saved: {record.document_id} ({record.status.value})")

    async def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        try:
            response = await asyncio.to_thread(
                self._documents_client.get_item,
                TableName=self._documents_name,
                Key=self._document_key(document_id),
                ConsistentRead=True,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error getting document {document_id}: {e}")
            raise PersistenceError(f"Failed to read document {document_id}: {e}") from e

        item = response.get("Item")
        return DocumentRecord.from_dict(item) if item else None

    async def find_by_extraction_job(self, extraction_job_id: str) -> Optional[DocumentRecord]:
        try:
            response = await asyncio.to_thread(
                self._documents_client.query,
                TableName=self._documents_name,
                IndexName="ExtractionJobIndex",
                KeyConditionExpression=Key("GSI1PK").eq(f"EXTRACTION_JOB#{extraction_job_id}"),
                Limit=1,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error querying document for job {extraction_job_id}: {e}")
            raise PersistenceError(f"Failed to look up job {extraction_job_id}: {e}") from e

        items = response.get("Items", [])
        return DocumentRecord.from_dict(items[0]) if items else None

    async def list_by_status(self, status: DocumentStatus, updated_before: str) -> List[DocumentRecord]:
        query = {
            "TableName": self._documents_name,
            "IndexName": "StatusIndex",
            "KeyConditionExpression": Key("GSI2PK").eq(f"STATUS#{status.value}") & Key("GSI2SK").lt(updated_before),
        }
        try:
            response = await asyncio.to_thread(self._documents_client.query, **query)
            items = response.get("Items", [])

            # Handle pagination
            while "LastEvaluatedKey" in response:
                response = await asyncio.to_thread(
                    self._documents_client.query,
                    ExclusiveStartKey=response["LastEvaluatedKey"],
                    **query,
                )
                items.extend(response.get("Items", []))
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error listing documents in {status.value}: {e}")
            raise PersistenceError(f"Failed to list documents in {status.value}: {e}") from e

        return [DocumentRecord.from_dict(item) for item in items]

    async def _apply_transition(self, document_id, target, sources, attributes) -> None:
        names = {"#status": "status"}
        values = {
            ":status": target.value,
            ":gsi2pk": f"STATUS#{target.value}",
        }
        assignments = ["#status = :status", "GSI2PK = :gsi2pk", "GSI2SK = :updatedAt"]

        for name, value in attributes.items():
            values[f":{name}"] = value
            assignments.append(f"{name} = :{name}")

        if "extractionJobId" in attributes:
            values[":gsi1pk"] = f"EXTRACTION_JOB#{attributes['extractionJobId']}"
            assignments.append("GSI1PK = :gsi1pk")

        placeholders = []
        for index, source in enumerate(sorted(sources, key=lambda s: s.value)):
            values[f":from{index}"] = source.value
            placeholders.append(f":from{index}")

        try:
            await asyncio.to_thread(
                self._documents_client.update_item,
                TableName=self._documents_name,
                Key=self._document_key(document_id),
                UpdateExpression="SET " + ", ".join(assignments),
                ConditionExpression=f"attribute_exists(PK) AND #status IN ({', '.join(placeholders)})",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ReturnValuesOnConditionCheckFailure="ALL_OLD",
            )
        except ClientError as e:
            if client_error_code(e) == "ConditionalCheckFailedException":
                current = e.response.get("Item", {}).get("status", {}).get("S")
                raise StatusTransitionError(document_id, target.value, current) from e
            logger.error(f"Error updating document {document_id} to {target.value}: {e}")
            raise PersistenceError(f"Failed to update document {document_id}: {e}") from e
        except BotoCoreError as e:
            logger.error(f"Error updating document {document_id} to {target.value}: {e}")
            raise PersistenceError(f"Failed to update document {document_id}: {e}") from e

    async def _put_job(self, job: ProcessingJob) -> None:
        await asyncio.to_thread(
            self._jobs_client.put_item,
            TableName=self._jobs_name,
            Item={**self._job_key(job.extraction_job_id), **job.to_dict()},
        )

    async def _update_job(self, extraction_job_id, status, page_count) -> None:
        assignments = ["#status = :status", "updatedAt = :updatedAt"]
        values = {":status": status.value, ":updatedAt": utc_now_iso()}
        if page_count is not None:
            assignments.append("pageCount = :pageCount")
            values[":pageCount"] = page_count

        await asyncio.to_thread(
            self._jobs_client.update_item,
            TableName=self._jobs_name,
            Key=self._job_key(extraction_job_id),
            UpdateExpression="SET " + ", ".join(assignments),
            ConditionExpression="attribute_exists(PK)",
            ExpressionAttributeNames={"#status": "status"},
            ExpressionAttributeValues=values,
        )
