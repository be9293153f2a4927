import asyncio

import pytest
from botocore.exceptions import EndpointConnectionError
from fastapi.testclient import TestClient

from docintel.main import create_app
from docintel.shared.errors import PersistenceError
from docintel.shared.rate_limit import DynamoDBRateLimiter, InMemoryRateLimiter
from docintel.documents.models import DocumentStatus
from docintel.documents.services.ledger import InMemoryStatusLedger
from docintel.documents.services.upload_service import UploadCoordinator

from fakes import FakeTable


@pytest.fixture
def client(s3, ledger, storage, validation):
    coordinator = UploadCoordinator(s3, ledger, InMemoryRateLimiter(2), storage, validation)
    return TestClient(create_app(upload_coordinator=coordinator, status_ledger=ledger))


def test_upload_url_returns_credential(client, ledger):
    response = client.post("/documents/upload-url", json={"filename": "report.pdf", "contentType": "application/pdf"})

    assert response.status_code == 200
    body = response.json()
    assert set(body) == {"uploadUrl", "documentId", "objectKey", "expiresIn"}
    assert body["objectKey"] == f"uploads/{body['documentId']}/report.pdf"
    assert body["expiresIn"] == 300

    record = asyncio.run(ledger.get_document(body["documentId"]))
    assert record.status is DocumentStatus.UPLOAD_PENDING


def test_invalid_file_type_is_400(client):
    response = client.post("/documents/upload-url", json={"filename": "notes.txt"})

    assert response.status_code == 400
    assert response.json() == {
        "error": "INVALID_FILE_TYPE",
        "message": "Only .pdf files are allowed",
        "code": "validation_error",
    }


def test_rate_limit_is_429(client):
    for _ in range(2):
        assert client.post("/documents/upload-url", json={"filename": "a.pdf"}).status_code == 200

    response = client.post("/documents/upload-url", json={"filename": "a.pdf"})

    assert response.status_code == 429
    assert response.json()["code"] == "rate_limit_exceeded"


def test_persistence_failure_is_500(s3, storage, validation):
    class BrokenLedger(InMemoryStatusLedger):
        async def create_document(self, record):
            raise PersistenceError("table unavailable")

    ledger = BrokenLedger()
    coordinator = UploadCoordinator(s3, ledger, InMemoryRateLimiter(10), storage, validation)
    client = TestClient(create_app(upload_coordinator=coordinator, status_ledger=ledger))

    response = client.post("/documents/upload-url", json={"filename": "report.pdf"})

    assert response.status_code == 500
    assert response.json()["code"] == "internal_error"


def test_identity_header_is_required_when_authentication_is_enabled(client, monkeypatch):
    monkeypatch.setenv("ENABLE_AUTHENTICATION", "true")

    rejected = client.post("/documents/upload-url", json={"filename": "a.pdf"})

    assert rejected.status_code == 401
    assert rejected.json() == {
        "error": "UNAUTHORIZED",
        "message": "Authentication required.",
        "code": "unauthorized",
    }

    response = client.post(
        "/documents/upload-url",
        json={"filename": "a.pdf"},
        headers={"x-amzn-oidc-identity": "user-123"},
    )
    assert response.status_code == 200


def test_missing_filename_is_structured_422(client):
    response = client.post("/documents/upload-url", json={})

    assert response.status_code == 422
    body = response.json()
    assert set(body) == {"error", "message", "code"}
    assert body["error"] == "INVALID_REQUEST"
    assert body["code"] == "validation_error"
    assert "filename" in body["message"]


def test_unreachable_rate_limit_store_is_structured_500(s3, ledger, storage, validation):
    limiter = DynamoDBRateLimiter(
        FakeTable(responses={"update_item": [EndpointConnectionError(endpoint_url="https://dynamodb.local")]}),
        max_requests=10,
    )
    coordinator = UploadCoordinator(s3, ledger, limiter, storage, validation)
    client = TestClient(create_app(upload_coordinator=coordinator, status_ledger=ledger))

    response = client.post("/documents/upload-url", json={"filename": "report.pdf"})

    assert response.status_code == 500
    assert response.json() == {
        "error": "INTERNAL_ERROR",
        "message": "Failed to generate upload URL",
        "code": "internal_error",
    }


def test_document_status_polling(client):
    created = client.post("/documents/upload-url", json={"filename": "report.pdf"}).json()

    response = client.get(f"/documents/{created['documentId']}")

    assert response.status_code == 200
    body = response.json()
    assert body["documentId"] == created["documentId"]
    assert body["status"] == "UPLOAD_PENDING"


def test_unknown_document_is_404(client):
    response = client.get("/documents/does-not-exist")

    assert response.status_code == 404
    assert response.json()["error"] == "DOCUMENT_NOT_FOUND"


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
