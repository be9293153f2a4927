import asyncio
import re

import pytest

from docintel.shared.errors import (
    DependencyError,
    DocumentValidationError,
    PersistenceError,
    RateLimitExceededError,
)
from docintel.shared.rate_limit import InMemoryRateLimiter
from docintel.documents.models import DocumentStatus
from docintel.documents.services.ledger import InMemoryStatusLedger
from docintel.documents.services.upload_service import UploadCoordinator

from fakes import client_error


class FailingLedger(InMemoryStatusLedger):
    async def create_document(self, record):
        raise PersistenceError("table unavailable")


def make_coordinator(s3, ledger, storage, validation, max_requests=10):
    return UploadCoordinator(s3, ledger, InMemoryRateLimiter(max_requests), storage, validation)


def test_create_upload_records_document_before_returning(s3, ledger, storage, validation):
    coordinator = make_coordinator(s3, ledger, storage, validation)

    credential = asyncio.run(coordinator.create_upload("alice", "Quarterly Report.pdf", "application/pdf"))

    assert re.fullmatch(r"uploads/[0-9a-f-]{36}/Quarterly_Report\.pdf", credential.object_key)
    assert credential.object_key.split("/")[1] == credential.document_id
    assert credential.expires_in == 300

    record = asyncio.run(ledger.get_document(credential.document_id))
    assert record.status is DocumentStatus.UPLOAD_PENDING
    assert record.bucket == "docs-bucket"
    assert record.object_key == credential.object_key

    presigned = s3.presigned[0]
    assert presigned["method"] == "put_object"
    assert presigned["params"]["ContentType"] == "application/pdf"
    assert presigned["expires"] == 300


def test_rate_limit_is_enforced_before_any_write(s3, ledger, storage, validation):
    coordinator = make_coordinator(s3, ledger, storage, validation, max_requests=1)
    asyncio.run(coordinator.create_upload("alice", "one.pdf"))

    with pytest.raises(RateLimitExceededError):
        asyncio.run(coordinator.create_upload("alice", "two.pdf"))
    assert len(s3.presigned) == 1


def test_wrong_content_type_is_rejected(s3, ledger, storage, validation):
    coordinator = make_coordinator(s3, ledger, storage, validation)

    with pytest.raises(DocumentValidationError) as excinfo:
        asyncio.run(coordinator.create_upload("alice", "report.pdf", "image/png"))
    assert excinfo.value.error == "INVALID_CONTENT_TYPE"


def test_content_type_parameters_are_ignored(s3, ledger, storage, validation):
    coordinator = make_coordinator(s3, ledger, storage, validation)

    credential = asyncio.run(coordinator.create_upload("alice", "report.pdf", "Application/PDF; charset=binary"))
    assert credential.document_id


def test_traversal_filename_stays_inside_the_document_prefix(s3, ledger, storage, validation):
    coordinator = make_coordinator(s3, ledger, storage, validation)

    credential = asyncio.run(coordinator.create_upload("alice", "../../etc/passwd.pdf"))

    assert credential.object_key == f"uploads/{credential.document_id}/etc_passwd.pdf"


def test_persistence_failure_returns_no_credential(s3, storage, validation):
    coordinator = make_coordinator(s3, FailingLedger(), storage, validation)

    with pytest.raises(PersistenceError):
        asyncio.run(coordinator.create_upload("alice", "report.pdf"))


def test_signing_failure_is_a_dependency_error(s3, ledger, storage, validation):
    s3.presign_error = client_error("AccessDenied")
    coordinator = make_coordinator(s3, ledger, storage, validation)

    with pytest.raises(DependencyError):
        asyncio.run(coordinator.create_upload("alice", "report.pdf"))
