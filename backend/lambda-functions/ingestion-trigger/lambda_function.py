"""
Ingestion Trigger Lambda
Starts Textract text detection for PDFs uploaded to the documents bucket

Triggered by S3 ObjectCreated notifications on the upload prefix.
"""
import asyncio
import json
import logging
import os

logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())

from docintel.wiring import build_ingestion_trigger

# Built once per container
trigger = build_ingestion_trigger()


def lambda_handler(event, context):
    """
    Lambda handler for S3 ObjectCreated events

    Every record is processed independently; failures are reported in the
    result and logged, never raised, so one bad upload cannot cause the
    whole batch to be redelivered.
    """
    logger.info(f"Received {len(event.get('Records') or [])} S3 records")
    result = asyncio.run(trigger.handle_event(event))
    logger.info(f"Result: {json.dumps(result.to_dict())}")
    return result.to_dict()
