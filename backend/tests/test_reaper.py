import asyncio
import re
from datetime import datetime, timedelta, timezone

from docintel.documents.models import DocumentRecord, DocumentStatus, format_timestamp, utc_now_iso
from docintel.documents.ingestion.reaper import StaleExtractionReaper

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def seed(ledger, document_id, status, age_minutes, job_id=None):
    stamp = format_timestamp(NOW - timedelta(minutes=age_minutes))
    asyncio.run(ledger.create_document(DocumentRecord(
        document_id=document_id,
        filename="f.pdf",
        bucket="docs-bucket",
        object_key=f"uploads/{document_id}/f.pdf",
        status=status,
        extraction_job_id=job_id,
        created_at=stamp,
        updated_at=stamp,
    )))


def test_stale_documents_are_failed(ledger, staleness):
    seed(ledger, "stale-pending", DocumentStatus.EXTRACTION_PENDING, 90)
    seed(ledger, "stale-running", DocumentStatus.EXTRACTION_IN_PROGRESS, 61, job_id="job-1")
    seed(ledger, "fresh-running", DocumentStatus.EXTRACTION_IN_PROGRESS, 5, job_id="job-2")
    seed(ledger, "old-upload", DocumentStatus.UPLOAD_PENDING, 500)

    reaped = asyncio.run(StaleExtractionReaper(ledger, staleness, clock=lambda: NOW).sweep())

    assert reaped == {"EXTRACTION_PENDING": 1, "EXTRACTION_IN_PROGRESS": 1}

    pending = asyncio.run(ledger.get_document("stale-pending"))
    assert pending.status is DocumentStatus.EXTRACTION_START_FAILED
    assert "timed out" in pending.error_message

    running = asyncio.run(ledger.get_document("stale-running"))
    assert running.status is DocumentStatus.EXTRACTION_FAILED

    assert asyncio.run(ledger.get_document("fresh-running")).status is DocumentStatus.EXTRACTION_IN_PROGRESS
    assert asyncio.run(ledger.get_document("old-upload")).status is DocumentStatus.UPLOAD_PENDING


def test_sweep_with_nothing_stale(ledger, staleness):
    reaped = asyncio.run(StaleExtractionReaper(ledger, staleness).sweep(now=NOW))

    assert reaped == {"EXTRACTION_PENDING": 0, "EXTRACTION_IN_PROGRESS": 0}


def test_timestamps_always_carry_microseconds():
    assert format_timestamp(NOW) == "2026-03-01T12:00:00.000000Z"
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{6}Z", utc_now_iso())


def test_document_just_inside_the_timeout_survives_a_whole_second_cutoff(ledger, staleness):
    # Cutoff lands on 11:00:00 exactly; the document was touched 1us later
    stamp = format_timestamp(NOW - timedelta(minutes=60) + timedelta(microseconds=1))
    asyncio.run(ledger.create_document(DocumentRecord(
        document_id="borderline",
        filename="f.pdf",
        bucket="docs-bucket",
        object_key="uploads/borderline/f.pdf",
        status=DocumentStatus.EXTRACTION_IN_PROGRESS,
        extraction_job_id="job-1",
        created_at=stamp,
        updated_at=stamp,
    )))

    reaped = asyncio.run(StaleExtractionReaper(ledger, staleness).sweep(now=NOW))

    assert reaped["EXTRACTION_IN_PROGRESS"] == 0
    assert asyncio.run(ledger.get_document("borderline")).status is DocumentStatus.EXTRACTION_IN_PROGRESS
