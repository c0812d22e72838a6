"""
Exception handlers - Translate errors into the JSON error envelope.

Every failure leaves the API as
``{"success": false, "error": {"message", "code", "details"?}}`` with the
status carried by the domain error. Unexpected exceptions are logged with
their traceback and reported as a generic 500.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api.models import ErrorDetail, ErrorResponse
from src.domain.exceptions import DomainError, InternalError

logger = logging.getLogger(__name__)

_HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "TOO_MANY_REQUESTS",
}


def error_response(
    status_code: int,
    message: str,
    code: str,
    details: list[dict] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(message=message, code=code, details=details))
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


async def handle_domain_error(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(exc.status_code, exc.message, exc.code, exc.details)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in exc.errors()
    ]
    message = details[0]["message"] if details else "Validation failed"
    return error_response(status.HTTP_400_BAD_REQUEST, message, "VALIDATION_ERROR", details)


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _HTTP_CODES.get(exc.status_code, "ERROR")
    return error_response(exc.status_code, str(exc.detail), code)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    error = InternalError()
    return error_response(error.status_code, error.message, error.code)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_unexpected_error)
