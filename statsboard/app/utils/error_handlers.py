"""
Centralized error handling and user-friendly error messages.
"""
import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base application error."""
    def __init__(self, message: str, status_code: int = 500, details: dict | None = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(AppError):
    """Resource not found error."""
    def __init__(self, message: str = "Resource not found", details: dict | None = None):
        super().__init__(message, status_code=404, details=details)


class UnauthorizedError(AppError):
    """Unauthorized access error."""
    def __init__(self, message: str = "Unauthorized access", details: dict | None = None):
        super().__init__(message, status_code=401, details=details)


class StoreUnavailableError(AppError):
    """Record store could not answer a query (timeout, connection failure)."""
    def __init__(self, message: str = "Record store unavailable", details: dict | None = None):
        super().__init__(message, status_code=500, details=details)


class CacheUnavailableError(AppError):
    """
    Cache store could not be read or written.
    Never reaches the client: the cache manager recovers from it.
    """
    def __init__(self, message: str = "Cache store unavailable", details: dict | None = None):
        super().__init__(message, status_code=503, details=details)


# User-friendly error messages
ERROR_MESSAGES = {
    # Authentication
    "unauthorized": "Please login to access this feature.",
    "session_expired": "Your session has expired. Please login again.",

    # Analytics
    "user_not_found": "User not found.",
    "stats_unavailable": "We couldn't load your statistics right now. Please try again later.",

    # General
    "not_found": "The requested resource was not found.",
    "server_error": "Something went wrong on our end. Please try again later.",
    "database_error": "Database connection issue. Please try again later.",
}


def get_error_message(error_key: str, default: str | None = None) -> str:
    """Get a user-friendly error message."""
    return ERROR_MESSAGES.get(error_key, default or ERROR_MESSAGES["server_error"])


def create_error_response(
    status_code: int,
    message: str,
    details: dict[str, Any] | None = None
) -> JSONResponse:
    """Create a standardized error response."""
    content = {
        "success": False,
        "error": message,
    }

    if details:
        content["details"] = details

    return JSONResponse(
        status_code=status_code,
        content=content
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTPException with user-friendly messages."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "status_code": exc.status_code,
        },
    )


async def app_error_handler(request: Request, exc: AppError):
    """Handle application errors; 5xx bodies never carry internal details."""
    if exc.status_code >= 500:
        logger.error("%s: %s", type(exc).__name__, exc.message)
        return create_error_response(exc.status_code, get_error_message("stats_unavailable"))
    return create_error_response(exc.status_code, exc.message, exc.details or None)


async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError):
    """Handle general database errors."""
    logger.exception("Database SQLAlchemyError: %s", exc)
    return create_error_response(500, get_error_message("database_error"))


async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors globally."""
    logger.exception("Unhandled exception: %s", exc)
    return create_error_response(500, get_error_message("server_error"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
