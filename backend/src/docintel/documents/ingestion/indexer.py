"""Extraction indexer: DynamoDB stream -> S3 Vectors

Consumes the documents table's stream. Every record that shows a document
entering EXTRACTION_COMPLETED is indexed:

1. Fetch the stored Textract result from S3
2. Group LINE text by page
3. Chunk each page with a sliding window
4. Embed each chunk with Bedrock, in order
5. Write each chunk to the vector index under its deterministic chunk id

A document that fails is marked INDEXING_FAILED and its stream record is
reported back to Lambda as a batch item failure.
"""

import asyncio
import logging
from typing import Dict, Optional

from boto3.dynamodb.types import TypeDeserializer
from botocore.exceptions import BotoCoreError, ClientError

from docintel.shared.config import ChunkingSettings, StorageSettings
from docintel.shared.errors import classify_client_error
from docintel.documents.models import DocumentRecord, DocumentStatus, IndexedChunk
from docintel.documents.services.ledger import StatusLedger
from docintel.documents.ingestion.batch import run_records
from docintel.documents.ingestion.chunking import chunk_pages
from docintel.documents.ingestion.embeddings import BedrockEmbedder, S3VectorIndex
from docintel.documents.ingestion.processors import extract_text_by_page, parse_results_blob, results_key_for

logger = logging.getLogger(__name__)

_deserializer = TypeDeserializer()


def new_image(record: dict) -> Dict[str, object]:
    """Decode the NewImage of a DynamoDB stream record into plain Python values."""
    image = (record.get("dynamodb") or {}).get("NewImage") or {}
    return {name: _deserializer.deserialize(value) for name, value in image.items()}


def is_extraction_completed(record: dict) -> bool:
    """Stream filter: INSERT/MODIFY events whose new status is EXTRACTION_COMPLETED."""
    if record.get("eventName") not in ("INSERT", "MODIFY"):
        return False
    return new_image(record).get("status") == DocumentStatus.EXTRACTION_COMPLETED.value


class ExtractionIndexer:
    """Turns extracted documents into searchable chunks."""

    def __init__(
        self,
        s3_client,
        embedder: BedrockEmbedder,
        vector_index: S3VectorIndex,
        ledger: StatusLedger,
        storage: StorageSettings,
        chunking: ChunkingSettings,
    ):
        self._s3 = s3_client
        self._embedder = embedder
        self._vector_index = vector_index
        self._ledger = ledger
        self._storage = storage
        self._chunking = chunking

    async def handle_event(self, event: dict) -> dict:
        """
        Index every qualifying stream record.

        Returns:
            Lambda partial batch response listing the sequence numbers of
            records that failed
        """
        records = [record for record in event.get("Records") or [] if is_extraction_completed(record)]
        logger.info(f"Extraction indexer received {len(event.get('Records') or [])} records, {len(records)} to index")

        result = await run_records(records, self.process_record, "extraction-indexer")

        return {
            "batchItemFailures": [
                {"itemIdentifier": (records[index].get("dynamodb") or {}).get("SequenceNumber", "")}
                for index in result.failed_indices
            ]
        }

    async def process_record(self, record: dict) -> Optional[int]:
        """
        Index the document carried by one stream record.

        Returns:
            Number of chunks indexed, or None if the document no longer needs indexing

        Raises:
            Exception: Whatever stopped indexing; the document is marked INDEXING_FAILED first
        """
        image = DocumentRecord.from_dict(new_image(record))

        # Stream records can be replayed after the document has moved on
        current = await self._ledger.get_document(image.document_id)
        if current is None or current.status is not DocumentStatus.EXTRACTION_COMPLETED:
            state = current.status.value if current else "missing"
            logger.info(f"Skipping document {image.document_id}: status is {state}")
            return None

        try:
            chunk_count = await self.index_document(current)
        except Exception as e:
            logger.error(f"Indexing failed for document {current.document_id}: {e}", exc_info=True)
            try:
                await self._ledger.mark_failed(current.document_id, DocumentStatus.INDEXING_FAILED, str(e))
            except Exception as mark_error:
                logger.error(f"Could not mark document {current.document_id} as INDEXING_FAILED: {mark_error}")
            raise

        await self._ledger.try_mark_indexed(current.document_id, chunk_count)
        return chunk_count

    async def index_document(self, document: DocumentRecord) -> int:
        """
        Chunk, embed and upsert one document. Safe to re-run: chunk ids are
        deterministic, so a second run overwrites the first.

        Returns:
            Number of chunks written
        """
        results = await self._load_results(document)
        pages = extract_text_by_page(results)
        chunks = chunk_pages(pages, self._chunking.chunk_size, self._chunking.overlap)

        logger.info(f"Document {document.document_id}: {len(pages)} pages with text, {len(chunks)} chunks")

        for chunk in chunks:
            embedding = await self._embedder.embed(chunk.text)
            await self._vector_index.upsert(
                IndexedChunk(
                    document_id=document.document_id,
                    filename=document.filename,
                    sequence_index=chunk.sequence_index,
                    content=chunk.text,
                    embedding=embedding,
                    page_number=chunk.page_number,
                )
            )

        logger.info(f"Indexed {len(chunks)} chunks for document {document.document_id}")
        return len(chunks)

    async def _load_results(self, document: DocumentRecord) -> dict:
        key = results_key_for(document.object_key, self._storage.results_prefix)
        try:
            response = await asyncio.to_thread(self._s3.get_object, Bucket=document.bucket, Key=key)
            body = await asyncio.to_thread(response["Body"].read)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to read Textract results s3://{document.bucket}/{key}: {e}")
            raise classify_client_error(e, "s3") from e

        return parse_results_blob(body)

