"""Standard error handler: one JSON envelope for every failure."""

from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..engine.layout_editor import (
    CopyNotConfirmed,
    LayoutAccessDenied,
    LayoutSaveError,
    NoEditSession,
)
from ..utils.logging import get_logger

logger = get_logger("middleware.error_handler")


def error_envelope(request: Request, status_code: int, detail: Any, **extra) -> JSONResponse:
    content = {
        "error": True,
        "status_code": status_code,
        "detail": detail,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": getattr(request.state, "request_id", None),
    }
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def register_error_handlers(app: FastAPI) -> None:
    """Register standard error handlers on the app."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_envelope(request, exc.status_code, exc.detail)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return error_envelope(request, 422, "Validation error", errors=jsonable_encoder(exc.errors()))

    @app.exception_handler(LayoutAccessDenied)
    async def layout_access_denied_handler(request: Request, exc: LayoutAccessDenied):
        return error_envelope(request, 403, str(exc))

    @app.exception_handler(CopyNotConfirmed)
    async def copy_not_confirmed_handler(request: Request, exc: CopyNotConfirmed):
        return error_envelope(request, 409, str(exc))

    @app.exception_handler(NoEditSession)
    async def no_edit_session_handler(request: Request, exc: NoEditSession):
        return error_envelope(request, 409, str(exc))

    @app.exception_handler(LayoutSaveError)
    async def layout_save_error_handler(request: Request, exc: LayoutSaveError):
        logger.error(
            "layout_save_error",
            error=str(exc),
            cause=str(exc.__cause__) if exc.__cause__ else None,
            path=str(request.url.path),
        )
        return error_envelope(request, 500, str(exc))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(
            "unhandled_exception",
            error=str(exc),
            request_id=getattr(request.state, "request_id", None),
            path=str(request.url.path),
            exc_info=True,
        )
        return error_envelope(request, 500, "Internal server error")
