import pytest

from docintel.shared.config import ChunkingSettings, PipelineSettings


def test_defaults(monkeypatch):
    for name in ("S3_DOCUMENTS_BUCKET", "CHUNK_SIZE", "CHUNK_OVERLAP", "TEXTRACT_SNS_TOPIC_ARN", "TEXTRACT_ROLE_ARN"):
        monkeypatch.delenv(name, raising=False)

    settings = PipelineSettings.from_env(dotenv=False)

    assert settings.chunking.chunk_size == 1000
    assert settings.chunking.overlap == 100
    assert settings.storage.presigned_url_expiry == 300
    assert settings.validation.max_file_size_bytes == 50 * 1024 * 1024
    assert settings.textract.max_attempts == 3
    assert settings.textract.notifications_enabled is False


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("S3_DOCUMENTS_BUCKET", "my-docs")
    monkeypatch.setenv("S3_UPLOAD_PREFIX", "/incoming/")
    monkeypatch.setenv("CHUNK_SIZE", "500")
    monkeypatch.setenv("CHUNK_OVERLAP", "50")
    monkeypatch.setenv("ALLOWED_EXTENSIONS", ".PDF, .pdfa")
    monkeypatch.setenv("DYNAMODB_RATE_LIMIT_TABLE", "limits")
    monkeypatch.setenv("TEXTRACT_SNS_TOPIC_ARN", "arn:aws:sns:us-east-1:1:topic")
    monkeypatch.setenv("TEXTRACT_ROLE_ARN", "arn:aws:iam::1:role/r")

    settings = PipelineSettings.from_env(dotenv=False)

    assert settings.storage.documents_bucket == "my-docs"
    assert settings.storage.upload_prefix == "incoming"
    assert settings.chunking == ChunkingSettings(chunk_size=500, overlap=50)
    assert settings.validation.allowed_extensions == (".pdf", ".pdfa")
    assert settings.tables.rate_limit_table == "limits"
    assert settings.textract.notifications_enabled is True


def test_overlap_must_be_smaller_than_chunk_size(monkeypatch):
    monkeypatch.setenv("CHUNK_SIZE", "100")
    monkeypatch.setenv("CHUNK_OVERLAP", "100")

    with pytest.raises(ValueError):
        PipelineSettings.from_env(dotenv=False)
