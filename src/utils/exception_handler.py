# src/utils/exception_handler.py
from fastapi import FastAPI, Request, HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional
from .logger import setup_logger
from .exceptions import BaseAPIException
from sqlalchemy.exc import SQLAlchemyError, IntegrityError, NoResultFound
from slowapi.errors import RateLimitExceeded

logger = setup_logger("EXCEPTION HANDLER")


def error_envelope(
    status_code: int,
    message: str,
    error_type: str,
    headers: Optional[Dict[str, str]] = None,
    **extra: Any,
) -> JSONResponse:
    """Render a failure in the same envelope successful responses use"""
    content = {
        "success": False,
        "data": None,
        "error": message,
        "type": error_type,
        "status": status_code,
    }
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def setup_exception_handlers(app: FastAPI):
    @app.exception_handler(BaseAPIException)
    async def api_exception_handler(request: Request, exc: BaseAPIException):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            logger.info(f"Not found: {exc.detail}")
        else:
            logger.warning(f"{exc.error_type} on {request.url.path}: {exc.detail}")
        return error_envelope(
            exc.status_code, str(exc.detail), exc.error_type, headers=exc.headers
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        # Standardize common HTTP error responses
        error_details = {
            status.HTTP_400_BAD_REQUEST: "Bad request",
            status.HTTP_401_UNAUTHORIZED: "Unauthorized - Authentication required",
            status.HTTP_403_FORBIDDEN: "Forbidden - You don't have permission",
            status.HTTP_404_NOT_FOUND: "Resource not found",
            status.HTTP_405_METHOD_NOT_ALLOWED: "Method not allowed",
            status.HTTP_409_CONFLICT: "Conflict - Resource already exists",
            status.HTTP_500_INTERNAL_SERVER_ERROR: "Internal server error",
        }

        detail = exc.detail or error_details.get(exc.status_code, "An error occurred")

        if exc.status_code == status.HTTP_404_NOT_FOUND:
            logger.info(f"Not found: {detail}")
        else:
            logger.warning(f"HTTP Exception {exc.status_code}: {detail}")

        return error_envelope(
            exc.status_code,
            str(detail),
            "HTTPException",
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        logger.info(f"Validation error on {request.url.path}: {exc.errors()}")
        return error_envelope(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation error",
            "ValidationError",
            details=[
                {"loc": list(err.get("loc", [])), "msg": err.get("msg")}
                for err in exc.errors()
            ],
        )

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"Database error: {str(exc)}", exc_info=True)

        if isinstance(exc, IntegrityError):
            detail = (
                "Database integrity error - possible duplicate or constraint violation"
            )
            status_code = status.HTTP_409_CONFLICT
        elif isinstance(exc, NoResultFound):
            detail = "Requested resource not found in database"
            status_code = status.HTTP_404_NOT_FOUND
        else:
            detail = "Database operation failed"
            status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

        return error_envelope(status_code, detail, "DatabaseError")

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
        logger.warning(f"Rate limit exceeded: {str(exc)}")
        detail_message = "Too many requests - please try again later"
        if isinstance(getattr(exc, "detail", None), str):
            detail_message = f"Too many requests - limit is {exc.detail}"

        return error_envelope(
            status.HTTP_429_TOO_MANY_REQUESTS, detail_message, "RateLimitExceeded"
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unexpected error: {str(exc)}", exc_info=True)
        return error_envelope(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Internal server error",
            "InternalServerError",
        )
