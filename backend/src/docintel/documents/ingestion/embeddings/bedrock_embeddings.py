"""Bedrock embeddings and S3 Vectors storage

Generates chunk embeddings with Amazon Titan text embeddings and writes
them to an S3 vector index keyed by chunk id.
"""

import asyncio
import json
import logging
from typing import List

from botocore.exceptions import BotoCoreError, ClientError

from docintel.shared.config import EmbeddingSettings, VectorIndexSettings
from docintel.shared.errors import DependencyError, classify_client_error
from docintel.documents.models import IndexedChunk

logger = logging.getLogger(__name__)


class BedrockEmbedder:
    """Fixed-dimension text embeddings via bedrock-runtime InvokeModel."""

    def __init__(self, bedrock_client, settings: EmbeddingSettings):
        self._client = bedrock_client
        self.model_id = settings.model_id
        self.dimensions = settings.dimensions

    async def embed(self, text: str) -> List[float]:
        """
        Embed one piece of text.

        Raises:
            DependencyError: If the model call fails or returns a malformed vector
        """
        return await asyncio.to_thread(self._embed, text)

    def _embed(self, text: str) -> List[float]:
        body = json.dumps({
            "inputText": text,
            "dimensions": self.dimensions,
            "normalize": True,
        })

        try:
            response = self._client.invoke_model(
                modelId=self.model_id,
                body=body,
                contentType="application/json",
                accept="application/json",
            )
            result = json.loads(response["body"].read())
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Embedding request to {self.model_id} failed: {e}")
            raise classify_client_error(e, "bedrock") from e

        embedding = result.get("embedding")
        if not isinstance(embedding, list) or len(embedding) != self.dimensions:
            size = len(embedding) if isinstance(embedding, list) else "missing"
            raise DependencyError(
                f"Expected a {self.dimensions}-dimension embedding from {self.model_id}, got {size}",
                service="bedrock",
            )
        return [float(value) for value in embedding]


class S3VectorIndex:
    """Vector index backed by Amazon S3 Vectors. put_vectors overwrites existing keys."""

    def __init__(self, s3vectors_client, settings: VectorIndexSettings):
        self._client = s3vectors_client
        self.vector_bucket = settings.vector_bucket
        self.index_name = settings.index_name

    async def upsert(self, chunk: IndexedChunk) -> None:
        """
        Write one chunk, replacing any vector with the same chunk id.

        Raises:
            DependencyError: If the write fails
        """
        await asyncio.to_thread(self._upsert, chunk)

    def _upsert(self, chunk: IndexedChunk) -> None:
        try:
            self._client.put_vectors(
                vectorBucketName=self.vector_bucket,
                indexName=self.index_name,
                vectors=[{
                    "key": chunk.chunk_id,
                    "data": {"float32": chunk.embedding},
                    "metadata": chunk.metadata(),
                }],
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to index chunk {chunk.chunk_id} into {self.index_name}: {e}")
            raise classify_client_error(e, "s3vectors") from e
