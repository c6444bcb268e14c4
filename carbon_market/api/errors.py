"""Response envelope helpers and exception handlers for the HTTP API."""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from carbon_market.core.config import AppSettings
from carbon_market.models.exceptions import (
    InsufficientCollateralError,
    InvalidStateError,
    ModelNotFoundError,
    ModelValidationError,
    NotEligibleError,
    VersionConflictError,
)


logger = logging.getLogger(__name__)

GENERIC_SERVER_MESSAGE = "Something went wrong"

_BAD_REQUEST_ERRORS = (
    ModelValidationError,
    InvalidStateError,
    InsufficientCollateralError,
    NotEligibleError,
)


def success(data: Any = None, message: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    """Build the `{success, data, message}` envelope."""
    payload: Dict[str, Any] = {"success": True}
    if data is not None:
        payload["data"] = data
    payload.update(extra)
    if message:
        payload["message"] = message
    return payload


def status_for(exc: Exception) -> int:
    """Map a domain exception to its HTTP status code."""
    if isinstance(exc, ModelNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, VersionConflictError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, _BAD_REQUEST_ERRORS) or isinstance(exc, ValueError):
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def server_message(exc: Exception, settings: AppSettings) -> str:
    """Hide internal error details outside development."""
    if settings.is_production:
        return GENERIC_SERVER_MESSAGE
    return str(exc) or exc.__class__.__name__


def http_error_for(exc: Exception, failure: str, settings: AppSettings) -> HTTPException:
    """Convert a service exception into an HTTPException carrying the envelope.

    Args:
        exc: Exception raised by the service layer.
        failure: Operation failure text used for server errors.
        settings: Application settings deciding how much detail to expose.
    """
    status_code = status_for(exc)
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        detail = {"success": False, "error": failure, "message": server_message(exc, settings)}
    else:
        detail = {"success": False, "error": str(exc)}
    return HTTPException(status_code=status_code, detail=detail)


def register_exception_handlers(app: FastAPI, settings: AppSettings) -> None:
    """Render every error, including framework ones, with the response envelope."""

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if isinstance(exc.detail, dict):
            content = exc.detail
        else:
            content = {"success": False, "error": str(exc.detail)}
        return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = "; ".join(
            "{0}: {1}".format(".".join(str(part) for part in error.get("loc", ())), error.get("msg", ""))
            for error in errors
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": "Invalid request", "message": message},
        )

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error path=%s", request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Internal server error", "message": server_message(exc, settings)},
        )
