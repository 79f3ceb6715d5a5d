"""Role model for user authorization."""

from typing import TYPE_CHECKING

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomcomfort.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from roomcomfort.models.user import User


USER_ROLE = "user"
ADMIN_ROLE = "admin"


class Role(Base, TimestampMixin):
    """Named role assigned to users."""

    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    users: Mapped[list["User"]] = relationship("User", back_populates="role")

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name})>"


# Roles seeded at startup
DEFAULT_ROLES = [
    {
        "name": USER_ROLE,
        "description": "Owns chips and manages their rooms and thresholds",
    },
    {
        "name": ADMIN_ROLE,
        "description": "Manages base thresholds and any user's chips",
    },
]
