"""
Exception handlers

Every failure leaves the API in the same envelope:
    {"success": false, "error": "...", "code": "..."}

- Domain errors -> status from the error class, message kept
- Validation errors -> 400 with the first offending field
- Anything else -> logged with traceback; clients get a generic 500
  with an error id (full detail only when DEBUG is on)
"""
import logging
import traceback
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from butik.core.config import settings
from butik.core.exceptions import ButikError
from butik.schemas.common import error_response

logger = logging.getLogger(__name__)

GENERIC_MESSAGE = "An unexpected error occurred. Please try again later."


async def butik_error_handler(request: Request, exc: ButikError) -> JSONResponse:
    log = logger.warning if exc.status_code >= 409 else logger.info
    log("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.message, code=exc.code, data=exc.details or None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(
        status_code=400,
        content=error_response(message, code="INVALID_INPUT"),
    )


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(str(exc.detail), code=f"HTTP_{exc.status_code}"),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    error_id = f"{request.client.host if request.client else 'unknown'}-{id(exc)}"
    logger.error(
        f"Unhandled exception [{error_id}]: {type(exc).__name__}: {str(exc)}\n"
        f"Path: {request.url.path}\n"
        f"Method: {request.method}\n"
        f"Traceback:\n{traceback.format_exc()}"
    )
    if settings.DEBUG:
        message = f"{type(exc).__name__}: {exc}"
    else:
        message = GENERIC_MESSAGE
    return JSONResponse(
        status_code=500,
        content=error_response(message, code="INTERNAL_ERROR", data={"error_id": error_id}),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ButikError, butik_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
