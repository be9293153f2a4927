"""AWS client construction

Every stage receives already-constructed client handles. Clients are built
once per Lambda container from PipelineSettings; there is no lazy
initialisation on first use.
"""

import logging
from dataclasses import dataclass
from typing import Any

import boto3
from botocore.config import Config

from .config import AwsSettings

logger = logging.getLogger(__name__)

# Retries for idempotent calls are left to botocore's standard mode; the
# Textract start call is retried by the trigger itself.
_BOTO_CONFIG = Config(retries={"max_attempts": 3, "mode": "standard"})
_TEXTRACT_CONFIG = Config(retries={"max_attempts": 1, "mode": "standard"})
_S3_CONFIG = Config(signature_version="s3v4", retries={"max_attempts": 3, "mode": "standard"})


@dataclass(frozen=True)
class AwsClients:
    """Bundle of boto3 handles shared by the pipeline stages"""

    s3: Any
    textract: Any
    dynamodb: Any  # boto3 DynamoDB service resource
    bedrock_runtime: Any
    s3vectors: Any

    @classmethod
    def create(cls, settings: AwsSettings) -> "AwsClients":
        """
        Build all clients from one boto3 session.

        Args:
            settings: Region and optional named profile

        Returns:
            AwsClients instance
        """
        if settings.profile:
            session = boto3.Session(profile_name=settings.profile, region_name=settings.region)
        else:
            session = boto3.Session(region_name=settings.region)

        clients = cls(
            s3=session.client("s3", config=_S3_CONFIG),
            textract=session.client("textract", config=_TEXTRACT_CONFIG),
            dynamodb=session.resource("dynamodb", config=_BOTO_CONFIG),
            bedrock_runtime=session.client("bedrock-runtime", config=_BOTO_CONFIG),
            s3vectors=session.client("s3vectors", config=_BOTO_CONFIG),
        )

        logger.info(f"Initialized AWS clients: region={settings.region}, profile={settings.profile or 'default'}")
        return clients
