"""Pytest configuration for test suite."""

import sys
from pathlib import Path

import pytest

# Add backend/src to Python path for imports
# This file is in backend/tests/, so we need to go up one level to backend/
BACKEND_DIR = Path(__file__).parent.parent
SRC_DIR = BACKEND_DIR / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from docintel.shared.config import (  # noqa: E402
    ChunkingSettings,
    StalenessSettings,
    StorageSettings,
    TextractSettings,
    ValidationSettings,
)
from docintel.documents.services.ledger import InMemoryStatusLedger  # noqa: E402

from fakes import FakeS3, FakeTextract, RecordingSleep  # noqa: E402


@pytest.fixture
def ledger():
    return InMemoryStatusLedger()


@pytest.fixture
def storage():
    return StorageSettings(documents_bucket="docs-bucket")


@pytest.fixture
def validation():
    return ValidationSettings()


@pytest.fixture
def textract_settings():
    return TextractSettings(
        sns_topic_arn="arn:aws:sns:us-east-1:123456789012:textract-complete",
        role_arn="arn:aws:iam::123456789012:role/textract-publish",
    )


@pytest.fixture
def chunking():
    return ChunkingSettings(chunk_size=50, overlap=10)


@pytest.fixture
def staleness():
    return StalenessSettings(extraction_timeout_minutes=60)


@pytest.fixture
def s3():
    return FakeS3()


@pytest.fixture
def textract():
    return FakeTextract()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture(autouse=True)
def _auth_disabled(monkeypatch):
    monkeypatch.setenv("ENABLE_AUTHENTICATION", "false")
