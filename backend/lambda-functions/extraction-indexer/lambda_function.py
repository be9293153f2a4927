"""
Extraction Indexer Lambda
Chunks, embeds and indexes documents that reach EXTRACTION_COMPLETED

Attached to the documents table's DynamoDB stream with
ReportBatchItemFailures enabled, so only failed records are retried.
"""
import asyncio
import logging
import os

logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())

from docintel.wiring import build_indexer

# Built once per container
indexer = build_indexer()


def lambda_handler(event, context):
    """
    Lambda handler for DynamoDB stream batches

    Returns:
        {"batchItemFailures": [{"itemIdentifier": <SequenceNumber>}, ...]}
    """
    response = asyncio.run(indexer.handle_event(event))
    if response["batchItemFailures"]:
        logger.warning(f"{len(response['batchItemFailures'])} stream records failed and will be retried")
    return response
