"""Threshold and per-scope threshold adjustment models."""

from sqlalchemy import Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomcomfort.models.base import Base, TimestampMixin, VersionedMixin


class Threshold(Base, TimestampMixin):
    """Base comfort bounds for one monitored parameter.

    Names are stored lower-cased. Either bound may be absent, in which case
    it is never checked and cannot be adjusted.
    """

    __tablename__ = "thresholds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    low_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    high_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    low_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    high_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Threshold(name={self.name}, low={self.low_value}, high={self.high_value})>"


class ThresholdAdjustment(Base, TimestampMixin, VersionedMixin):
    """Delta applied to one threshold for one (user, ownership) scope."""

    __tablename__ = "threshold_adjustments"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "ownership_id", "threshold_id",
            name="uq_threshold_adjustments_scope",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    ownership_id: Mapped[int] = mapped_column(
        ForeignKey("ownerships.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    threshold_id: Mapped[int] = mapped_column(
        ForeignKey("thresholds.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    low_delta: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    high_delta: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    threshold: Mapped["Threshold"] = relationship("Threshold", lazy="selectin")

    def __repr__(self) -> str:
        return (
            f"<ThresholdAdjustment(user_id={self.user_id}, ownership_id={self.ownership_id}, "
            f"threshold_id={self.threshold_id}, version={self.version})>"
        )
