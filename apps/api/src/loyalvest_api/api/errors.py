"""Translate engine exceptions into structured HTTP responses."""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from loyalvest_api.services.errors import (
    CapExceededError,
    DuplicateTransactionError,
    EngineError,
    GrantStateError,
    InvalidInputError,
    NotApprovedError,
    NotFoundError,
    TransactionProcessingError,
)


STATUS_BY_ERROR: tuple[tuple[type[EngineError], int], ...] = (
    (InvalidInputError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (DuplicateTransactionError, status.HTTP_409_CONFLICT),
    (GrantStateError, status.HTTP_409_CONFLICT),
    (NotApprovedError, status.HTTP_409_CONFLICT),
    (CapExceededError, 422),
    (TransactionProcessingError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_for(exc: EngineError) -> int:
    for error_cls, code in STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return code
    return status.HTTP_400_BAD_REQUEST


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("Engine request failed", path=request.url.path, code=exc.code)
    else:
        logger.info("Engine request rejected", path=request.url.path, code=exc.code, status=status_code)
    return JSONResponse(status_code=status_code, content={"error": exc.as_dict()})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EngineError, engine_error_handler)


__all__ = ["STATUS_BY_ERROR", "engine_error_handler", "register_error_handlers", "status_for"]
