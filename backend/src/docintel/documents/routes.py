"""Document API routes: upload credentials and status polling."""

import logging

from fastapi import APIRouter, Depends, Request, status

from docintel.shared.auth import get_client_identity
from docintel.shared.errors import (
    DependencyError,
    DocumentValidationError,
    ErrorCode,
    PersistenceError,
    RateLimitExceededError,
    error_response,
)
from docintel.documents.models import DocumentStatusResponse, UploadUrlRequest, UploadUrlResponse
from docintel.documents.services.ledger import StatusLedger
from docintel.documents.services.upload_service import UploadCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


def get_upload_coordinator(request: Request) -> UploadCoordinator:
    return request.app.state.upload_coordinator


def get_status_ledger(request: Request) -> StatusLedger:
    return request.app.state.status_ledger


@router.post("/upload-url", response_model=UploadUrlResponse, response_model_by_alias=True)
async def create_upload_url(
    body: UploadUrlRequest,
    client_id: str = Depends(get_client_identity),
    coordinator: UploadCoordinator = Depends(get_upload_coordinator),
):
    """
    Issue a presigned URL for uploading one PDF directly to S3.

    Args:
        body: Filename and optional declared content type
        client_id: Caller identity (injected)

    Returns:
        UploadUrlResponse with the URL, document id, object key and expiry

    Errors:
        400: Invalid filename or content type
        429: Rate limit exceeded
        500: URL signing or record persistence failed
    """
    try:
        credential = await coordinator.create_upload(client_id, body.filename, body.content_type)
    except DocumentValidationError as e:
        return error_response(status.HTTP_400_BAD_REQUEST, e.error, str(e), ErrorCode.VALIDATION_ERROR)
    except RateLimitExceededError as e:
        return error_response(status.HTTP_429_TOO_MANY_REQUESTS, "RATE_LIMIT_EXCEEDED", str(e))
    except (DependencyError, PersistenceError) as e:
        logger.error(f"Failed to issue upload URL for client {client_id}: {e}", exc_info=True)
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_ERROR",
            "Failed to generate upload URL",
        )

    return UploadUrlResponse(
        upload_url=credential.upload_url,
        document_id=credential.document_id,
        object_key=credential.object_key,
        expires_in=credential.expires_in,
    )


@router.get("/{document_id}", response_model=DocumentStatusResponse, response_model_by_alias=True)
async def get_document_status(
    document_id: str,
    client_id: str = Depends(get_client_identity),
    ledger: StatusLedger = Depends(get_status_ledger),
):
    """Current lifecycle state of a document. 404 if unknown."""
    try:
        record = await ledger.get_document(document_id)
    except PersistenceError as e:
        logger.error(f"Failed to read document {document_id}: {e}", exc_info=True)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", "Failed to read document")

    if record is None:
        return error_response(status.HTTP_404_NOT_FOUND, "DOCUMENT_NOT_FOUND", f"Document '{document_id}' not found")

    return DocumentStatusResponse.from_record(record)
