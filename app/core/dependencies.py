from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import AsyncGenerator, Optional

from ..enums import UserRole
from ..exceptions import ForbiddenException, InternalServerErrorException, UnauthorizedException
from ..db.database import AsyncSessionLocal
from ..models.user import User


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Asynchronous dependency that provides a database session for FastAPI routes.

    Yields:
        AsyncSession: An instance of the asynchronous database session.

    Usage:
        Use as a dependency in FastAPI endpoints to access the database session.
        The session is automatically closed after the request is processed.
    """

    async with AsyncSessionLocal() as db:
        yield db


async def get_current_user(
    user_id: Optional[int] = Header(None, alias="X-User-Id"),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Retrieve the caller forwarded by the authentication gateway.

    Args:
        user_id (int): Value of the ``X-User-Id`` header set by the gateway.
        db (AsyncSession): The asynchronous database session dependency.

    Returns:
        User: The user the request is made on behalf of.

    Raises:
        UnauthorizedException: If the header is missing or the user does not exist.
    """
    if user_id is None:
        raise UnauthorizedException("Authentication required")

    user = await db.get(User, user_id)
    if not user or user.is_deleted:
        raise UnauthorizedException("Unknown user")

    return user


def get_current_admin(user: User = Depends(get_current_user)) -> User:
    if not user.role == UserRole.ADMIN:
        raise ForbiddenException(detail="Only admins can access this resource!")

    return user


def get_flash_sale_scheduler(request: Request):
    scheduler = getattr(request.app.state, "flash_sale_scheduler", None)
    if scheduler is None:
        raise InternalServerErrorException("Flash sale scheduler is not available")
    return scheduler
