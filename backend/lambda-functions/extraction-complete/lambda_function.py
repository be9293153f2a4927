"""
Extraction Complete Lambda
Stores finished Textract output and marks documents EXTRACTION_COMPLETED

Subscribed to the SNS topic Textract publishes job completion to.
"""
import asyncio
import logging
import os

logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())

from docintel.wiring import build_completion_handler

# Built once per container
handler = build_completion_handler()


def lambda_handler(event, context):
    """Lambda handler for Textract completion notifications"""
    result = asyncio.run(handler.handle_event(event))
    return result.to_dict()
