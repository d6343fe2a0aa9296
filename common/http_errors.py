"""HTTP error mapping and request logging shared by the FastAPI services."""

import logging
import time
import uuid

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from common.exceptions import (
    P2PException,
    InvalidArgumentError,
    PeerConflictError,
    NotFoundError,
    ResourceExhaustedError,
    StorageIOError,
    ChecksumMismatchError,
    PeerUnavailableError,
    TrackerUnavailableError,
)

# Most specific first; the first isinstance match wins.
ERROR_STATUS_CODES = [
    (InvalidArgumentError, status.HTTP_400_BAD_REQUEST),
    (PeerConflictError, status.HTTP_409_CONFLICT),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ResourceExhaustedError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ChecksumMismatchError, status.HTTP_502_BAD_GATEWAY),
    (PeerUnavailableError, status.HTTP_502_BAD_GATEWAY),
    (TrackerUnavailableError, status.HTTP_502_BAD_GATEWAY),
    (StorageIOError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_code_for(exc: P2PException) -> int:
    """Return the HTTP status for a domain exception."""
    for exc_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def install_request_logging(app: FastAPI, logger: logging.Logger) -> None:
    """
    Add middleware that logs every HTTP request and tags the response with X-Request-ID.
    """

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()

        logger.info(
            f"Request started: {request.method} {request.url.path} [request_id={request_id}]"
        )

        response = await call_next(request)

        duration = time.time() - start_time

        logger.info(
            f"Request completed: {request.method} {request.url.path} "
            f"status={response.status_code} duration={duration:.3f}s [request_id={request_id}]"
        )

        response.headers["X-Request-ID"] = request_id

        return response


def install_exception_handlers(app: FastAPI, logger: logging.Logger) -> None:
    """
    Map domain exceptions and body validation failures to JSON error responses.

    Every error body is {"detail": ..., "code": ...}.
    """

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        request_id = getattr(request.state, 'request_id', 'unknown')
        errors = exc.errors()
        detail = "; ".join(
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
            for error in errors
        ) or "Malformed request"
        logger.warning(
            f"Request validation error: {detail} [request_id={request_id}] path={request.url.path}"
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": detail, "code": InvalidArgumentError.code}
        )

    @app.exception_handler(P2PException)
    async def p2p_exception_handler(request: Request, exc: P2PException):
        request_id = getattr(request.state, 'request_id', 'unknown')
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error(
                f"{type(exc).__name__}: {exc} [request_id={request_id}] path={request.url.path}",
                exc_info=exc
            )
        else:
            logger.warning(
                f"{type(exc).__name__}: {exc} [request_id={request_id}] path={request.url.path}"
            )

        headers = None
        if isinstance(exc, ResourceExhaustedError):
            headers = {"Retry-After": "1"}

        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "code": exc.code},
            headers=headers
        )
