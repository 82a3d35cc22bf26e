# src/utils/exceptions.py
from fastapi import HTTPException, status
from typing import Any, NoReturn, Optional
from logging import Logger
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from .logger import setup_logger

logger = setup_logger("EXCEPTIONS")


class BaseAPIException(HTTPException):
    """Domain error reported to the caller verbatim; never retried"""

    error_type: str = "Error"

    def __init__(
        self,
        status_code: int,
        detail: Any = None,
        headers: Optional[dict] = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class NotFoundException(BaseAPIException):
    error_type = "NotFound"

    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ConflictException(BaseAPIException):
    error_type = "Conflict"

    def __init__(self, detail: str = "Resource already exists"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class AlreadyResolvedException(BaseAPIException):
    error_type = "AlreadyResolved"

    def __init__(self, detail: str = "Share request is no longer pending"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class ExpiredException(BaseAPIException):
    error_type = "Expired"

    def __init__(self, detail: str = "Share request has expired"):
        super().__init__(status_code=status.HTTP_410_GONE, detail=detail)


class UnauthorizedException(BaseAPIException):
    error_type = "Unauthorized"

    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenException(BaseAPIException):
    error_type = "Forbidden"

    def __init__(self, detail: str = "Operation not authorized"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class BadRequestException(BaseAPIException):
    error_type = "BadRequest"

    def __init__(self, detail: str = "Bad Request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


async def handle_db_exception(
    db: AsyncSession, logger: Logger, operation: str, exception: Exception
) -> NoReturn:
    """Roll back the failed unit of work and re-raise as an API error"""
    await db.rollback()
    logger.error(f"Database error during {operation}: {str(exception)}", exc_info=True)

    if isinstance(exception, BaseAPIException):
        raise exception

    if isinstance(exception, IntegrityError):
        raise ConflictException(f"Conflicting write during {operation}")

    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Internal server error during {operation}",
    )
