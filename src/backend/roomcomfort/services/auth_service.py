"""Authentication service for login and token operations."""

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from roomcomfort.core.security import TokenType, issue_token, read_token, verify_password
from roomcomfort.models.user import User
from roomcomfort.services.errors import AuthenticationError

logger = structlog.get_logger()


class AuthService:
    """Service for authentication operations."""

    def __init__(self, db: AsyncSession):
        """Initialize auth service with database session."""
        self.db = db

    async def authenticate_user(self, username: str, password: str) -> User:
        """Authenticate user with username and password."""
        user = await self._get_user_by_username(username)

        if user is None or not verify_password(password, user.hashed_password):
            logger.info("Login failed", username=username)
            raise AuthenticationError("Invalid username or password")

        if not user.is_active:
            raise AuthenticationError("Account is deactivated")

        return user

    def create_tokens(self, user: User) -> dict[str, str]:
        """Create access and refresh tokens bound to the user's current version."""
        return {
            "access_token": issue_token(
                TokenType.ACCESS,
                user.id,
                user.version,
                username=user.username,
                role=user.role_name,
            ),
            "refresh_token": issue_token(TokenType.REFRESH, user.id, user.version),
            "token_type": "bearer",
        }

    async def refresh_access_token(self, refresh_token: str) -> tuple[User, dict[str, str]]:
        """Issue a new token pair from a refresh token."""
        user = await self._user_from_token(refresh_token, TokenType.REFRESH)
        return user, self.create_tokens(user)

    async def get_current_user(self, token: str) -> User:
        """Get current user from access token."""
        return await self._user_from_token(token, TokenType.ACCESS)

    async def _user_from_token(self, token: str, token_type: TokenType) -> User:
        claims = read_token(token, token_type)
        if claims is None:
            raise AuthenticationError("Invalid or expired token")

        user = await self.db.get(User, claims.user_id)
        if user is None:
            raise AuthenticationError("User not found")

        if claims.version != user.version:
            logger.info("Token for an outdated account version", user_id=user.id, token_version=claims.version)
            raise AuthenticationError("Token predates an account change")

        if not user.is_active:
            raise AuthenticationError("Account is deactivated")

        return user

    async def _get_user_by_username(self, username: str) -> User | None:
        result = await self.db.execute(
            select(User).where(func.lower(User.username) == username.strip().lower())
        )
        return result.scalar_one_or_none()
