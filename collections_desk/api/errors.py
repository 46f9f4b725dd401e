"""Translate domain exceptions into HTTP error responses"""

import logging
from typing import Any
from datetime import datetime, timezone
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from collections_desk.api.dependencies import get_request_id
from collections_desk.domain.exceptions import (
    ConflictError,
    DomainException,
    NotFoundError,
    ValidationError,
)

# Most specific class first
_STATUS_BY_ERROR = (
    (NotFoundError, 404, "NOT_FOUND"),
    (ConflictError, 409, "CONFLICT"),
    (ValidationError, 400, "BAD_REQUEST"),
)


def error_body(code: str, message: str, request: Request, details: Any = None) -> dict:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "requestId": get_request_id(request),
        }
    }


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    for error_cls, status_code, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return JSONResponse(status_code=status_code, content=error_body(code, str(exc), request))

    logging.error(f"Unhandled domain error: {exc}", extra={"request_id": get_request_id(request)})
    return JSONResponse(status_code=500, content=error_body("INTERNAL_SERVER_ERROR", "Internal server error", request))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and query parameters are client errors, same as domain validation"""
    return JSONResponse(
        status_code=400,
        content=error_body("BAD_REQUEST", "Request validation failed.", request, jsonable_encoder(exc.errors())),
    )


async def unexpected_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logging.error(
        f"Unexpected error: {exc}",
        exc_info=exc,
        extra={"request_id": get_request_id(request), "path": request.url.path},
    )
    return JSONResponse(status_code=500, content=error_body("INTERNAL_SERVER_ERROR", "Internal server error", request))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainException, domain_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unexpected_exception_handler)
