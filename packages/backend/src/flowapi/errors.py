"""Application error taxonomy and the FastAPI handlers that render it.

Every failure that reaches the HTTP layer is one of these classes. Each
carries its status code and a stable machine-readable code. Messages of
4xx errors are shown to the client; 5xx errors are logged with their
detail and answered with a generic message.
"""

from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = structlog.get_logger()

GENERIC_INTERNAL_MESSAGE = "Internal server error"


class AppError(Exception):
    """Base class for errors rendered as JSON responses."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, detail: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    @property
    def exposes_message(self) -> bool:
        return self.status_code < 500


class MalformedRequest(AppError):
    status_code = 400
    code = "MALFORMED_REQUEST"


class Unauthenticated(AppError):
    status_code = 401
    code = "UNAUTHENTICATED"


class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"


class Conflict(AppError):
    status_code = 409
    code = "CONFLICT"


class PayloadTooLarge(AppError):
    status_code = 413
    code = "PAYLOAD_TOO_LARGE"


class InternalFailure(AppError):
    status_code = 500
    code = "INTERNAL_ERROR"


def error_body(exc: AppError) -> dict:
    message = exc.message if exc.exposes_message else GENERIC_INTERNAL_MESSAGE
    return {"message": message, "code": exc.code}


def add_exception_handlers(app: FastAPI) -> None:
    """Register the AppError and catch-all handlers on the app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if not exc.exposes_message:
            logger.error(
                "request.internal_failure",
                method=request.method,
                path=request.url.path,
                error=exc.message,
                detail=str(exc.detail) if exc.detail is not None else None,
            )
        headers = None
        if isinstance(exc, Unauthenticated):
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(
            status_code=exc.status_code, content=error_body(exc), headers=headers
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(
            "request.unhandled_exception",
            method=request.method,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=500,
            content={"message": GENERIC_INTERNAL_MESSAGE, "code": InternalFailure.code},
        )
