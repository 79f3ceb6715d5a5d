"""Role service for the fixed user/admin roles."""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from roomcomfort.models.role import DEFAULT_ROLES, Role
from roomcomfort.services.errors import NotFoundError

logger = structlog.get_logger()


class RoleService:
    """Service for role lookup and seeding."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_role_by_name(self, name: str) -> Role | None:
        """Get a role by name."""
        result = await self.db.execute(select(Role).where(Role.name == name))
        return result.scalar_one_or_none()

    async def require_role(self, name: str) -> Role:
        role = await self.get_role_by_name(name)
        if role is None:
            raise NotFoundError(f"Role '{name}' not found")
        return role

    async def seed_default_roles(self) -> None:
        """Seed default roles if they don't exist."""
        created = []
        for role_data in DEFAULT_ROLES:
            existing = await self.get_role_by_name(role_data["name"])
            if not existing:
                self.db.add(Role(name=role_data["name"], description=role_data["description"]))
                created.append(role_data["name"])

        if created:
            await self.db.commit()
            logger.info("Default roles seeded", roles=created)
