"""Embedding generation and vector storage for text chunks

Generates vector embeddings using AWS Bedrock models and stores them in
S3 Vectors.
"""

from .bedrock_embeddings import (
    BedrockEmbedder,
    S3VectorIndex,
)

__all__ = [
    'BedrockEmbedder',
    'S3VectorIndex',
]
