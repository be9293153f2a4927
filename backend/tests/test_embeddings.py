import asyncio
import json

import pytest

from docintel.shared.config import EmbeddingSettings, VectorIndexSettings
from docintel.shared.errors import DependencyError, TransientDependencyError
from docintel.documents.models import IndexedChunk
from docintel.documents.ingestion.embeddings import BedrockEmbedder, S3VectorIndex

from fakes import FakeBody, client_error


class FakeBedrock:
    def __init__(self, embedding=None, error=None):
        self.embedding = embedding
        self.error = error
        self.requests = []

    def invoke_model(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        return {"body": FakeBody(json.dumps({"embedding": self.embedding, "inputTextTokenCount": 3}).encode())}


class FakeS3Vectors:
    def __init__(self, error=None):
        self.error = error
        self.requests = []

    def put_vectors(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        return {}


def test_embed_sends_titan_v2_body():
    bedrock = FakeBedrock(embedding=[0.1, 0.2, 0.3, 0.4])
    embedder = BedrockEmbedder(bedrock, EmbeddingSettings(dimensions=4))

    vector = asyncio.run(embedder.embed("hello world"))

    assert vector == [0.1, 0.2, 0.3, 0.4]
    request = bedrock.requests[0]
    assert request["modelId"] == "amazon.titan-embed-text-v2:0"
    assert json.loads(request["body"]) == {"inputText": "hello world", "dimensions": 4, "normalize": True}


def test_wrong_dimension_is_rejected():
    embedder = BedrockEmbedder(FakeBedrock(embedding=[0.1, 0.2]), EmbeddingSettings(dimensions=4))

    with pytest.raises(DependencyError):
        asyncio.run(embedder.embed("hello"))


def test_throttling_is_transient():
    embedder = BedrockEmbedder(FakeBedrock(error=client_error("ThrottlingException")), EmbeddingSettings())

    with pytest.raises(TransientDependencyError):
        asyncio.run(embedder.embed("hello"))


def test_upsert_uses_chunk_id_as_vector_key():
    client = FakeS3Vectors()
    index = S3VectorIndex(client, VectorIndexSettings(vector_bucket="vectors", index_name="docs"))
    chunk = IndexedChunk(
        document_id="doc-1",
        filename="report.pdf",
        sequence_index=3,
        content="some text",
        embedding=[0.5, 0.5],
        page_number=2,
    )

    asyncio.run(index.upsert(chunk))

    request = client.requests[0]
    assert request["vectorBucketName"] == "vectors"
    assert request["indexName"] == "docs"
    vector = request["vectors"][0]
    assert vector["key"] == "doc-1-chunk-3"
    assert vector["data"] == {"float32": [0.5, 0.5]}
    assert vector["metadata"]["pageNumber"] == 2
    assert vector["metadata"]["content"] == "some text"


def test_upsert_failure_is_a_dependency_error():
    index = S3VectorIndex(FakeS3Vectors(error=client_error("NotFoundException")), VectorIndexSettings())
    chunk = IndexedChunk("doc-1", "f.pdf", 0, "text", [0.1], 1)

    with pytest.raises(DependencyError):
        asyncio.run(index.upsert(chunk))
