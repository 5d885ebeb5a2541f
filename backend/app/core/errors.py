"""Domain errors and the handlers that turn them into JSON responses."""
from __future__ import annotations

import logging

from fastapi import FastAPI, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)


class VaultError(Exception):
    """Base class for errors raised by request handlers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: str = "Internal server error"

    def __init__(self, detail: str | None = None) -> None:
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class Unauthenticated(VaultError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Unauthorized"


class Forbidden(VaultError):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "Forbidden"


class NotFound(VaultError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Not found"


class BadRequest(VaultError):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Bad request"


class NotReady(VaultError):
    """The caller's local identity record has not been synced yet."""

    status_code = status.HTTP_404_NOT_FOUND
    detail = "User account not ready. Please refresh and try again."


class Conflict(VaultError):
    status_code = status.HTTP_409_CONFLICT
    detail = "Conflict"


class PayloadTooLarge(VaultError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    detail = "Uploaded file exceeds size limit"


class UpstreamFailure(VaultError):
    """An external service (media store or identity provider) call failed."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "Upstream service failure"


class InternalError(VaultError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "Internal server error"


def vault_error_handler(request: Request, exc: VaultError) -> JSONResponse:
    """Render a domain error as ``{"detail": ...}`` with its status code."""

    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.detail
        )
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)


def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed input as a 400 rather than FastAPI's default 422."""

    return JSONResponse(
        {"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())},
        status_code=status.HTTP_400_BAD_REQUEST,
    )


def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        {"detail": InternalError.detail},
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def register_error_handlers(app: FastAPI) -> None:
    """Attach the domain, validation and catch-all handlers to ``app``."""

    app.add_exception_handler(VaultError, vault_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)
