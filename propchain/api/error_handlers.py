"""Error Handlers - global exception handlers for the PropChain API.

Invariants:
    - PropChainError -> structured JSON with kind, code, message, outcome, retryable
    - RequestValidationError -> field-level error details, status 400
    - Exception (catch-all) -> never leaks internal details

Design Decisions:
    - Three-layer handler: domain (PropChainError), validation (Pydantic), catch-all (Exception)
    - Outcome-unknown failures logged at error level with the tx_ref: they are
      the ones an operator may need to reconcile by hand
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from propchain.core.domain_types import Outcome
from propchain.core.errors import PropChainError, ErrorSeverity

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    _register_propchain_error_handler(app)
    _register_validation_error_handler(app)
    _register_generic_error_handler(app)


def _register_propchain_error_handler(app: FastAPI) -> None:
    """Register PropChain domain/infrastructure error handler."""

    @app.exception_handler(PropChainError)
    async def propchain_error_handler(request: Request, exc: PropChainError):
        """Handle all PropChain domain/infrastructure errors."""
        log = logger.warning if exc.http_status < 500 else logger.error
        log(
            f"PropChainError: {exc.message}",
            extra={
                "error_code": exc.code,
                "path": request.url.path,
                "tx_ref": exc.context.tx_ref,
                "listing_id": exc.context.listing_id,
            },
        )
        if exc.outcome is Outcome.UNKNOWN:
            logger.error(
                "Ledger outcome unknown; reconcile before retrying",
                extra={"tx_ref": exc.context.tx_ref, "operation": exc.context.operation},
            )
        return JSONResponse(
            status_code=exc.http_status, content=exc.to_response(),
        )


def _register_validation_error_handler(app: FastAPI) -> None:
    """Register Pydantic validation error handler."""

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError,
    ):
        """Handle Pydantic validation errors."""
        logger.warning(
            f"Validation error on {request.url.path}: {exc.errors()}",
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_build_validation_error_response(exc),
        )


def _register_generic_error_handler(app: FastAPI) -> None:
    """Register catch-all error handler."""

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        """Catch-all: never leaks internal details."""
        logger.error(
            f"Unhandled exception on {request.url.path}: {exc}",
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "kind": "internal",
                    "code": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                    "outcome": Outcome.UNKNOWN.value,
                    "retryable": False,
                    "severity": ErrorSeverity.CRITICAL.value,
                },
            },
        )


def _build_validation_error_response(exc: RequestValidationError) -> dict:
    """Build structured validation error response."""
    return {
        "error": {
            "kind": "validation",
            "code": "VALIDATION_ERROR",
            "message": "Invalid request data",
            "outcome": Outcome.NOT_APPLIED.value,
            "retryable": False,
            "severity": ErrorSeverity.ERROR.value,
            "details": [
                {
                    "field": ".".join(str(loc) for loc in e["loc"]),
                    "message": e["msg"],
                    "type": e["type"],
                }
                for e in exc.errors()
            ],
        },
    }
