"""Component construction

Builds every pipeline stage from PipelineSettings and AwsClients. Lambda
entry points call these once per cold start, at import time.
"""

import logging
from typing import Optional, Tuple

from docintel.shared.aws_clients import AwsClients
from docintel.shared.config import PipelineSettings
from docintel.shared.rate_limit import create_rate_limiter
from docintel.documents.services.ledger import DynamoDBStatusLedger, StatusLedger
from docintel.documents.services.upload_service import UploadCoordinator
from docintel.documents.ingestion.trigger import IngestionTrigger
from docintel.documents.ingestion.completion import ExtractionCompletionHandler
from docintel.documents.ingestion.indexer import ExtractionIndexer
from docintel.documents.ingestion.reaper import StaleExtractionReaper
from docintel.documents.ingestion.embeddings import BedrockEmbedder, S3VectorIndex

logger = logging.getLogger(__name__)


def load_environment(
    settings: Optional[PipelineSettings] = None,
    clients: Optional[AwsClients] = None,
) -> Tuple[PipelineSettings, AwsClients]:
    settings = settings or PipelineSettings.from_env()
    clients = clients or AwsClients.create(settings.aws)
    return settings, clients


def build_ledger(settings: PipelineSettings, clients: AwsClients) -> StatusLedger:
    return DynamoDBStatusLedger(
        clients.dynamodb.Table(settings.tables.documents_table),
        clients.dynamodb.Table(settings.tables.jobs_table),
    )


def build_upload_coordinator(
    settings: PipelineSettings,
    clients: AwsClients,
    ledger: StatusLedger,
) -> UploadCoordinator:
    rate_limit_table = settings.tables.rate_limit_table
    rate_limiter = create_rate_limiter(
        settings.validation.rate_limit_max,
        settings.validation.rate_limit_window_seconds,
        table=clients.dynamodb.Table(rate_limit_table) if rate_limit_table else None,
        table_name=rate_limit_table,
    )
    return UploadCoordinator(clients.s3, ledger, rate_limiter, settings.storage, settings.validation)


def build_api_components(
    settings: Optional[PipelineSettings] = None,
    clients: Optional[AwsClients] = None,
) -> Tuple[UploadCoordinator, StatusLedger]:
    settings, clients = load_environment(settings, clients)
    ledger = build_ledger(settings, clients)
    return build_upload_coordinator(settings, clients, ledger), ledger


def build_ingestion_trigger(
    settings: Optional[PipelineSettings] = None,
    clients: Optional[AwsClients] = None,
) -> IngestionTrigger:
    settings, clients = load_environment(settings, clients)
    if not settings.textract.notifications_enabled:
        logger.warning("TEXTRACT_SNS_TOPIC_ARN/TEXTRACT_ROLE_ARN not set. Textract completion will not be reported.")

    return IngestionTrigger(
        clients.s3,
        clients.textract,
        build_ledger(settings, clients),
        settings.storage,
        settings.textract,
        settings.validation,
    )


def build_completion_handler(
    settings: Optional[PipelineSettings] = None,
    clients: Optional[AwsClients] = None,
) -> ExtractionCompletionHandler:
    settings, clients = load_environment(settings, clients)
    return ExtractionCompletionHandler(
        clients.s3,
        clients.textract,
        build_ledger(settings, clients),
        settings.storage,
    )


def build_indexer(
    settings: Optional[PipelineSettings] = None,
    clients: Optional[AwsClients] = None,
) -> ExtractionIndexer:
    settings, clients = load_environment(settings, clients)
    if not settings.vector_index.vector_bucket:
        logger.warning("S3_VECTOR_BUCKET not set. Vector writes will fail.")

    return ExtractionIndexer(
        clients.s3,
        BedrockEmbedder(clients.bedrock_runtime, settings.embedding),
        S3VectorIndex(clients.s3vectors, settings.vector_index),
        build_ledger(settings, clients),
        settings.storage,
        settings.chunking,
    )


def build_reaper(
    settings: Optional[PipelineSettings] = None,
    clients: Optional[AwsClients] = None,
) -> StaleExtractionReaper:
    settings, clients = load_environment(settings, clients)
    return StaleExtractionReaper(build_ledger(settings, clients), settings.staleness)
