"""User model for authentication and authorization."""

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomcomfort.models.base import Base, TimestampMixin, VersionedMixin
from roomcomfort.models.role import ADMIN_ROLE, USER_ROLE

if TYPE_CHECKING:
    from roomcomfort.models.ownership import Ownership
    from roomcomfort.models.role import Role


class User(Base, TimestampMixin, VersionedMixin):
    """Application user; version guards username changes."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(100), nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)

    role_id: Mapped[int] = mapped_column(ForeignKey("roles.id"), nullable=False, index=True)
    role: Mapped["Role"] = relationship("Role", back_populates="users", lazy="selectin")

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    ownerships: Mapped[list["Ownership"]] = relationship(
        "Ownership",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    @property
    def role_name(self) -> str:
        """Get the role name, defaulting to the plain user role."""
        return self.role.name if self.role else USER_ROLE

    @property
    def is_admin(self) -> bool:
        return self.role_name == ADMIN_ROLE

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username}, role={self.role_name})>"
