"""Exception handlers rendering every failure as ``{"error": message}``."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from services.exceptions import RelayError

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str, **details) -> JSONResponse:
    content = {"error": message}
    content.update({key: value for key, value in details.items() if value})
    return JSONResponse(status_code=status_code, content=content)


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "%s on %s %s: %s",
        type(exc).__name__,
        request.method,
        request.url.path,
        exc.message,
        extra={"status": exc.status_code},
    )
    return error_response(exc.status_code, exc.message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        fields.append(".".join(location) or "body")
    fields = list(dict.fromkeys(fields))
    logger.info(
        "Rejected request on %s %s",
        request.method,
        request.url.path,
        extra={"status": status.HTTP_400_BAD_REQUEST, "reason": ",".join(fields)},
    )
    message = "Missing or invalid fields: " + ", ".join(fields)
    return error_response(status.HTTP_400_BAD_REQUEST, message, fields=fields)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled %s on %s %s",
        type(exc).__name__,
        request.method,
        request.url.path,
        extra={"status": status.HTTP_500_INTERNAL_SERVER_ERROR, "reason": str(exc) or None},
        exc_info=exc,
    )
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RelayError, relay_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
