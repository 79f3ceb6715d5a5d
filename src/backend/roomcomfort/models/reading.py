"""Sensor reading and derived recommendation models."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomcomfort.models.base import Base

if TYPE_CHECKING:
    from roomcomfort.models.ownership import Ownership


class Reading(Base):
    """One immutable telemetry sample from a chip.

    Every sensor field is nullable: None means the sensor is not wired or
    did not report, which is different from a zero value.
    """

    __tablename__ = "readings"
    __table_args__ = (
        Index("ix_readings_chip_id_created_at", "chip_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chip_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # DHT sensor (primary) and BME sensor (secondary)
    temperature_dht: Mapped[float | None] = mapped_column(Float, nullable=True)
    humidity_dht: Mapped[float | None] = mapped_column(Float, nullable=True)
    temperature_bme: Mapped[float | None] = mapped_column(Float, nullable=True)
    humidity_bme: Mapped[float | None] = mapped_column(Float, nullable=True)
    pressure: Mapped[float | None] = mapped_column(Float, nullable=True)
    altitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Digital flags
    gas_detected: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    light: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    # Analog channels
    mq2_analog: Mapped[int | None] = mapped_column(Integer, nullable=True)
    mq2_analog_percent: Mapped[float | None] = mapped_column(Float, nullable=True)
    light_analog: Mapped[int | None] = mapped_column(Integer, nullable=True)
    light_analog_percent: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @property
    def temperature(self) -> float | None:
        """Primary temperature sensor, falling back to the secondary one."""
        return self.temperature_dht if self.temperature_dht is not None else self.temperature_bme

    @property
    def humidity(self) -> float | None:
        """Primary humidity sensor, falling back to the secondary one."""
        return self.humidity_dht if self.humidity_dht is not None else self.humidity_bme

    def __repr__(self) -> str:
        return f"<Reading(id={self.id}, chip_id={self.chip_id}, created_at={self.created_at})>"


class Recommendation(Base):
    """Advice derived from exactly one reading."""

    __tablename__ = "recommendations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reading_id: Mapped[int] = mapped_column(
        ForeignKey("readings.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    ownership_id: Mapped[int] = mapped_column(
        ForeignKey("ownerships.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)

    # Copied from the source reading, not the time of computation
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    ownership: Mapped["Ownership"] = relationship("Ownership", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Recommendation(id={self.id}, reading_id={self.reading_id})>"
