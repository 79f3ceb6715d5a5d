"""Dependency injection utilities for FastAPI."""

from typing import Annotated, AsyncGenerator

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from roomcomfort.core.config import settings
from roomcomfort.models.user import User
from roomcomfort.services.auth_service import AuthService
from roomcomfort.services.errors import AuthenticationError, PermissionDeniedError

# Database engine and session factory
engine = create_async_engine(settings.database_url, echo=settings.debug)
async_session_factory = async_sessionmaker(engine, expire_on_commit=False)

# Security scheme
security = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Resolve the bearer token to its user; failures surface as 401."""
    if credentials is None:
        raise AuthenticationError("Not authenticated")
    return await AuthService(db).get_current_user(credentials.credentials)


async def get_current_active_user(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get current active user."""
    if not current_user.is_active:
        raise PermissionDeniedError("Inactive user")
    return current_user


async def require_admin(
    current_user: Annotated[User, Depends(get_current_active_user)],
) -> User:
    """Allow only admins through."""
    if not current_user.is_admin:
        raise PermissionDeniedError("Insufficient permissions")
    return current_user


def ensure_self_or_admin(current_user: User, user_id: int) -> None:
    """Reject acting on another user's account unless the caller is an admin."""
    if current_user.id != user_id and not current_user.is_admin:
        raise PermissionDeniedError("Insufficient permissions")


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_active_user)]
AdminUser = Annotated[User, Depends(require_admin)]
