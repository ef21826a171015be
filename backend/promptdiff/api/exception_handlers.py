"""
Centralized exception handlers for consistent error responses

This module provides FastAPI exception handlers that ensure all errors
are returned in a consistent JSON format:

    {"error": "<code>", "message": "<text>", "details": {...}}
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import logging

from promptdiff.core.config import settings
from promptdiff.core.errors import PromptDiffError

logger = logging.getLogger(__name__)


def setup_exception_handlers(app: FastAPI):
    """
    Register all exception handlers on the FastAPI app.

    Call this after creating the FastAPI app instance:
        app = FastAPI()
        setup_exception_handlers(app)
    """

    @app.exception_handler(PromptDiffError)
    async def prompt_diff_error_handler(request: Request, exc: PromptDiffError):
        """Pipeline errors carry their own code and status"""
        if exc.status_code >= 500:
            logger.error(f"{request.url.path}: {exc.message}")
        else:
            logger.info(f"{request.url.path}: {exc.message}")

        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle Pydantic validation errors with detailed field info"""
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            errors.append({
                "field": field,
                "message": error["msg"],
                "type": error["type"]
            })

        return JSONResponse(
            status_code=422,
            content={
                "error": "validation_error",
                "message": "Request validation failed",
                "details": errors
            }
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        """Handle value errors as bad requests"""
        return JSONResponse(
            status_code=400,
            content={
                "error": "invalid_value",
                "message": str(exc)
            }
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Catch-all handler for unhandled exceptions"""
        logger.exception(f"Unhandled exception: {exc}")

        # Don't expose internal details in production
        if settings.DEBUG:
            return JSONResponse(
                status_code=500,
                content={
                    "error": "internal_error",
                    "message": str(exc),
                    "type": type(exc).__name__
                }
            )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": "An unexpected error occurred"
            }
        )
