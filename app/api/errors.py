from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.errors import (
    AlreadyExists,
    DomainError,
    InvalidIdentifier,
    InvalidQuery,
    InvalidReference,
    NotFound,
    OperationFailed,
)

_LOG = logging.getLogger("app.http")

STATUS_BY_ERROR: dict[type[DomainError], int] = {
    NotFound: 404,
    AlreadyExists: 409,
    InvalidReference: 400,
    InvalidIdentifier: 400,
    InvalidQuery: 400,
    OperationFailed: 500,
}


def status_for(exc: DomainError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[error_type]
    return 500


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def _domain_error_handler(request: Request, exc: DomainError):
        status_code = status_for(exc)
        if status_code >= 500:
            _LOG.warning(
                "%s %s failed: %s request_id=%s",
                request.method,
                request.url.path,
                exc.kind,
                getattr(request.state, "request_id", None),
            )
        return JSONResponse(status_code=status_code, content={"detail": exc.detail, "error": exc.kind})
