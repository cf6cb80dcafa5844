"""
Global exception handlers mapping engine errors to JSON responses.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from pastevault.errors import PasteError, StorageError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""

    @app.exception_handler(PasteError)
    async def paste_error_handler(request: Request, exc: PasteError):
        if isinstance(exc, StorageError):
            logger.error(f"StorageError on {request.url.path}: {exc.message}", exc_info=exc)
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        logger.warning(f"Validation error on {request.url.path}: {errors}")
        field = ".".join(str(part) for part in errors[0]["loc"][1:]) if errors else "body"
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "VALIDATION_ERROR", "message": f"Invalid value for {field or 'body'}"},
        )
