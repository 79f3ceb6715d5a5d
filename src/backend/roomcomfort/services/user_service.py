"""User service for registration, profiles and renames."""

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from roomcomfort.core.security import hash_password
from roomcomfort.models.role import ADMIN_ROLE, USER_ROLE
from roomcomfort.models.user import User
from roomcomfort.services.errors import (
    ConflictError,
    InvalidInputError,
    NotFoundError,
    PreconditionFailedError,
)
from roomcomfort.services.role_service import RoleService
from roomcomfort.services.versioning import format_etag, update_versioned

logger = structlog.get_logger()


def user_etag(user: User) -> str:
    return format_etag(user.id, user.version)


class UserService:
    """Service for user management operations."""

    def __init__(self, db: AsyncSession):
        """Initialize user service with database session."""
        self.db = db

    async def get_user(self, user_id: int) -> User:
        """Get a user by ID, raising NotFoundError when absent."""
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    async def get_user_by_username(self, username: str) -> User | None:
        """Get a user by username, ignoring case."""
        result = await self.db.execute(
            select(User).where(func.lower(User.username) == username.strip().lower())
        )
        return result.scalar_one_or_none()

    async def get_username(self, user_id: int) -> str:
        user = await self.get_user(user_id)
        return user.username

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        role_name: str = USER_ROLE,
    ) -> User:
        """Create a new user with the given role."""
        username = self._validate_username(username)
        self._validate_password(password)

        if await self.get_user_by_username(username) is not None:
            raise ConflictError("Username already registered")

        role = await RoleService(self.db).require_role(role_name)
        user = User(
            username=username,
            email=email.lower(),
            hashed_password=hash_password(password),
            role=role,
            is_active=True,
            version=1,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Username already registered")
        await self.db.refresh(user)

        logger.info("User registered", user_id=user.id, username=user.username, role=role_name)
        return user

    async def change_username(self, user_id: int, new_username: str, expected_version: int) -> User:
        """Rename a user if ``expected_version`` is still current."""
        new_username = self._validate_username(new_username)

        existing = await self.get_user_by_username(new_username)
        if existing is not None and existing.id != user_id:
            raise ConflictError("Username taken")

        try:
            result = await update_versioned(
                self.db,
                resource="user",
                load=lambda: self.db.get(User, user_id),
                changes=lambda _: {"username": new_username},
                etag_of=user_etag,
                if_match=format_etag(user_id, expected_version),
            )
        except PreconditionFailedError:
            raise ConflictError("Version conflict")
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Username taken")

        if result.changed:
            logger.info("Username changed", user_id=user_id, version=result.entity.version)
        return result.entity

    async def ensure_admin(self, username: str, email: str, password: str) -> User:
        """Create an admin user, or promote the existing one with that name."""
        user = await self.get_user_by_username(username)
        if user is None:
            return await self.register(username, email, password, role_name=ADMIN_ROLE)

        if not user.is_admin:
            role = await RoleService(self.db).require_role(ADMIN_ROLE)
            user.role = role
            await self.db.commit()
            await self.db.refresh(user)
            logger.info("User promoted to admin", user_id=user.id)
        return user

    @staticmethod
    def _validate_username(username: str) -> str:
        username = (username or "").strip()
        if len(username) < 3 or len(username) > 50:
            raise InvalidInputError("Username must be between 3 and 50 characters")
        return username

    @staticmethod
    def _validate_password(password: str) -> None:
        """Validate password strength."""
        if len(password) < 12:
            raise InvalidInputError("Password must be at least 12 characters long")

        has_upper = any(c.isupper() for c in password)
        has_lower = any(c.islower() for c in password)
        has_digit = any(c.isdigit() for c in password)

        if not (has_upper and has_lower and has_digit):
            raise InvalidInputError(
                "Password must contain uppercase, lowercase, and numeric characters"
            )
