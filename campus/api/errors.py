"""Exception handlers mapping domain errors to HTTP responses.

Every error body follows ``ErrorResponse``: ``{"error", "detail", "code"}``.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from campus.api.schemas.common import ErrorResponse
from campus.core.errors import CampusError, InvalidCredential, UnknownAccount

logger = logging.getLogger(__name__)


def _error_response(status_code: int, error: str, detail=None, code=None, headers=None) -> JSONResponse:
    body = ErrorResponse(error=error, detail=detail, code=code)
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


async def campus_error_handler(request: Request, exc: CampusError) -> JSONResponse:
    headers = None
    if isinstance(exc, (InvalidCredential, UnknownAccount)):
        headers = {"WWW-Authenticate": "Bearer"}
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    else:
        logger.info("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return _error_response(exc.status_code, exc.message, code=exc.code, headers=headers)


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return _error_response(
        status.HTTP_409_CONFLICT,
        "Resource already exists",
        code="conflict",
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    )
    return _error_response(
        status.HTTP_400_BAD_REQUEST,
        "Invalid request",
        detail=problems,
        code="validation_error",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CampusError, campus_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
