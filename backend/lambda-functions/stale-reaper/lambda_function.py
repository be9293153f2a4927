"""
Stale Extraction Reaper Lambda
Fails documents whose extraction never started or never reported completion

Invoked on a schedule by an EventBridge rule.
"""
import asyncio
import logging
import os

logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())

from docintel.wiring import build_reaper

# Built once per container
reaper = build_reaper()


def lambda_handler(event, context):
    """Lambda handler for the scheduled sweep"""
    reaped = asyncio.run(reaper.sweep())
    return {"reaped": reaped}
