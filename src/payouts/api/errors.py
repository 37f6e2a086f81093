"""Translate domain and validation errors into the API's failure envelope."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from payouts.domain.errors import ErrorCode, PayoutError

logger = structlog.get_logger()


def register_error_handlers(app: FastAPI) -> None:
    """Install exception handlers so no domain error escapes as a 500.

    Args:
        app: The FastAPI application instance.
    """

    @app.exception_handler(PayoutError)
    async def payout_error(request: Request, exc: PayoutError) -> JSONResponse:
        logger.info(
            "Request refused",
            path=request.url.path,
            code=exc.code.value,
            status_code=exc.status_code,
        )
        return JSONResponse(content=exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        error = PayoutError(
            ErrorCode.VALIDATION_ERROR,
            f"{field}: {message}" if field else message,
        )
        return JSONResponse(content=error.to_dict(), status_code=400)
