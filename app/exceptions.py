import logging

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError


logger = logging.getLogger(__name__)


class NotFoundException(HTTPException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class BadRequestException(HTTPException):
    def __init__(self, detail: str = "Bad request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class UnauthorizedException(HTTPException):
    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class ForbiddenException(HTTPException):
    def __init__(self, detail: str = "Forbidden"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class ConflictException(HTTPException):
    def __init__(self, detail: str = "Resource already exists"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class InternalServerErrorException(HTTPException):
    def __init__(self, detail: str = "Internal server error"):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


def translate_db_error(error: Exception, action: str) -> HTTPException:
    """
    Map an exception raised inside a transaction to an HTTP exception.

    Args:
        error (Exception): The exception caught after rollback.
        action (str): Short description used in the message, e.g. "create order".

    Returns:
        HTTPException: The original exception when it is already an HTTP error,
        otherwise Conflict for unique-key violations, BadRequest for check
        constraint violations and InternalServerError for everything else.
    """
    if isinstance(error, HTTPException):
        return error

    if isinstance(error, IntegrityError):
        message = str(error.orig).lower()
        if "unique" in message or "duplicate" in message:
            return ConflictException(f"Failed to {action}: record already exists")
        if "check" in message:
            return BadRequestException(f"Failed to {action}: constraint violated")

    if isinstance(error, SQLAlchemyError):
        logger.error(f"Database error while trying to {action}: {error}", exc_info=error)
    else:
        logger.error(f"Unexpected error while trying to {action}: {error}", exc_info=error)

    return InternalServerErrorException(f"Failed to {action}")
