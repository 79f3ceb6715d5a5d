"""Ownership model binding one chip to one user and one room."""

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomcomfort.models.base import Base, TimestampMixin, VersionedMixin

if TYPE_CHECKING:
    from roomcomfort.models.user import User


class Ownership(Base, TimestampMixin, VersionedMixin):
    """A chip registered to a user's room.

    chip_id is stored normalized (trimmed, upper-cased) and is unique across
    all users: a chip has at most one owner.
    """

    __tablename__ = "ownerships"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chip_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    room_name: Mapped[str] = mapped_column(String(100), nullable=False)
    image_name: Mapped[str] = mapped_column(String(200), nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="ownerships", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Ownership(id={self.id}, chip_id={self.chip_id}, version={self.version})>"
