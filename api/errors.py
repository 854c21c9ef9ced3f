"""
Error handling for the API.

Engine errors are mapped to HTTP statuses in one place. Routers never catch
them; the handler renders `{"error": code, "detail": message}`.
"""

import logging
from typing import Dict, Type

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from domain.errors import (
    AuthorizationError,
    ConflictError,
    DeadlineError,
    DependencyError,
    InsufficientInventory,
    ListingExhausted,
    NotFound,
    ShareClassMismatch,
    ShareExchangeError,
    StateError,
    TransactionConflict,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: Dict[Type[ShareExchangeError], int] = {
    ValidationError: 400,
    ShareClassMismatch: 400,
    AuthorizationError: 403,
    NotFound: 404,
    StateError: 409,
    ConflictError: 409,
    TransactionConflict: 409,
    ListingExhausted: 409,
    InsufficientInventory: 409,
    DeadlineError: 410,
    DependencyError: 503,
}


def status_for(exc: ShareExchangeError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 500


async def handle_engine_error(request: Request, exc: ShareExchangeError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error(
            "Request failed",
            exc_info=exc,
            extra={"path": request.url.path, "error": exc.code},
        )
    body = {"error": exc.code, "detail": exc.message}
    if exc.details:
        body["details"] = exc.details
    return JSONResponse(status_code=status, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ShareExchangeError, handle_engine_error)
