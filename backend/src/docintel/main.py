"""FastAPI application for the document upload API."""

import logging
from http import HTTPStatus
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from docintel.shared.errors import ErrorCode, error_response
from docintel.documents.routes import router as documents_router
from docintel.documents.services.ledger import StatusLedger
from docintel.documents.services.upload_service import UploadCoordinator

logger = logging.getLogger(__name__)


def _describe_validation_errors(exc: RequestValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(problems) or "Invalid request"


def register_exception_handlers(app: FastAPI) -> None:
    """Render framework-raised errors with the same `{error, message, code}` body as the routes."""

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.info(f"Rejected {request.method} {request.url.path}: {exc.errors()}")
        return error_response(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "INVALID_REQUEST",
            _describe_validation_errors(exc),
            ErrorCode.VALIDATION_ERROR,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        try:
            error = HTTPStatus(exc.status_code).name
        except ValueError:
            error = "HTTP_ERROR"

        response = error_response(exc.status_code, error, str(exc.detail))
        if exc.headers:
            response.headers.update(exc.headers)
        return response


def create_app(
    upload_coordinator: Optional[UploadCoordinator] = None,
    status_ledger: Optional[StatusLedger] = None,
) -> FastAPI:
    """
    Build the API application.

    Collaborators default to the ones built from the environment; tests pass
    their own.
    """
    if upload_coordinator is None or status_ledger is None:
        from docintel.wiring import build_api_components

        default_coordinator, default_ledger = build_api_components()
        upload_coordinator = upload_coordinator or default_coordinator
        status_ledger = status_ledger or default_ledger

    app = FastAPI(
        title="Document Intelligence API",
        description="Upload credentials and ingestion status for PDF documents",
        version="1.0.0",
    )

    # Stored on app.state for dependency injection
    app.state.upload_coordinator = upload_coordinator
    app.state.status_ledger = status_ledger

    register_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check():
        return {"status": "ok"}

    app.include_router(documents_router)

    logger.info("Document API initialized")
    return app
