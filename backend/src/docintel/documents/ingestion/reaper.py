"""Staleness reaper for extractions that never finished

Runs on a schedule. A document left in EXTRACTION_PENDING past the timeout
never got a Textract job and becomes EXTRACTION_START_FAILED; one left in
EXTRACTION_IN_PROGRESS never received its completion notification and
becomes EXTRACTION_FAILED.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from docintel.shared.config import StalenessSettings
from docintel.shared.errors import StatusTransitionError
from docintel.documents.models import DocumentStatus, format_timestamp
from docintel.documents.services.ledger import StatusLedger

logger = logging.getLogger(__name__)

# Stuck state -> failure state it times out into
STALE_TRANSITIONS = {
    DocumentStatus.EXTRACTION_PENDING: DocumentStatus.EXTRACTION_START_FAILED,
    DocumentStatus.EXTRACTION_IN_PROGRESS: DocumentStatus.EXTRACTION_FAILED,
}


class StaleExtractionReaper:
    def __init__(
        self,
        ledger: StatusLedger,
        settings: StalenessSettings,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._ledger = ledger
        self._timeout = timedelta(minutes=settings.extraction_timeout_minutes)
        self._clock = clock

    async def sweep(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Fail every document stuck in an extraction state longer than the timeout.

        Returns:
            Number of documents failed, keyed by the state they were stuck in
        """
        cutoff = format_timestamp((now or self._clock()) - self._timeout)
        minutes = int(self._timeout.total_seconds() // 60)
        reaped: Dict[str, int] = {}

        for stuck, failure in STALE_TRANSITIONS.items():
            count = 0
            for document in await self._ledger.list_by_status(stuck, cutoff):
                message = f"Extraction timed out after {minutes} minutes in {stuck.value}"
                try:
                    await self._ledger.mark_failed_from(document.document_id, stuck, failure, message)
                except StatusTransitionError as e:
                    # The document moved on between the query and the update
                    logger.info(f"Not reaping document {document.document_id}: {e}")
                    continue
                count += 1
                logger.warning(f"Document {document.document_id} stuck in {stuck.value} since {document.updated_at}")
            reaped[stuck.value] = count

        logger.info(f"Stale extraction sweep complete (cutoff {cutoff}): {reaped}")
        return reaped
