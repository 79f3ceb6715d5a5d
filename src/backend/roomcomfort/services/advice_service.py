"""Comfort advice derived from sensor readings.

Evaluation order is fixed: temperature, humidity, then gas, low bound
before high bound. Temperature and humidity prefer the DHT sensor and fall
back to the BME one. Gas only has a high side: the digital detector flag
fires the high message on its own, otherwise the MQ-2 analog percentage is
compared against the high bound.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from roomcomfort.core.config import settings
from roomcomfort.core.metrics import record_recommendation
from roomcomfort.models.ownership import Ownership
from roomcomfort.models.reading import Reading, Recommendation
from roomcomfort.services.errors import NotFoundError
from roomcomfort.services.ownership_service import OwnershipService, normalize_chip_id
from roomcomfort.services.threshold_resolver import (
    EffectiveThreshold,
    ThresholdResolver,
    ThresholdScope,
)

logger = structlog.get_logger()

NOMINAL_MESSAGE = "Everything is within the normal range."


def _check_bounds(
    value: float | None,
    threshold: EffectiveThreshold | None,
    messages: list[str],
) -> None:
    if threshold is None or value is None:
        return
    if threshold.low is not None and value < threshold.low and (threshold.low_message or "").strip():
        messages.append(threshold.low_message)
    if threshold.high is not None and value > threshold.high and (threshold.high_message or "").strip():
        messages.append(threshold.high_message)


def build_advice(reading: Reading, thresholds: dict[str, EffectiveThreshold]) -> list[str]:
    """Return the breach messages a reading triggers, in evaluation order."""
    messages: list[str] = []

    _check_bounds(reading.temperature, thresholds.get("temperature"), messages)
    _check_bounds(reading.humidity, thresholds.get("humidity"), messages)

    gas = thresholds.get("gas")
    if gas is not None and (gas.high_message or "").strip():
        if reading.gas_detected is True:
            messages.append(gas.high_message)
        elif (
            reading.mq2_analog_percent is not None
            and gas.high is not None
            and reading.mq2_analog_percent > gas.high
        ):
            messages.append(gas.high_message)

    return messages


def join_messages(messages: list[str]) -> str:
    """Join messages into one sentence list ending with a period.

    Returns the nominal message when nothing was triggered.
    """
    parts = [m.strip().rstrip(".!?") for m in messages if m and m.strip()]
    if not parts:
        return NOMINAL_MESSAGE
    return ". ".join(parts) + "."


@dataclass
class LatestAdvice:
    chip_id: str
    room_name: str
    advice: list[str] = field(default_factory=list)


@dataclass
class SaveResult:
    """Outcome of persisting advice; count is the number of triggered messages."""

    saved: bool
    count: int


@dataclass
class AdviceHistoryItem:
    created_at: datetime
    room_name: str | None
    text: str


class AdviceService:
    """Service for computing, storing and listing recommendations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ownerships = OwnershipService(db)
        self.resolver = ThresholdResolver(db)

    async def evaluate(self, reading: Reading, ownership: Ownership) -> list[str]:
        """Evaluate a reading against the thresholds scoped to its ownership."""
        thresholds = await self.resolver.resolve(
            ThresholdScope(user_id=ownership.user_id, ownership_id=ownership.id)
        )
        return build_advice(reading, thresholds)

    async def compute_latest(self, chip_id: str) -> LatestAdvice:
        """Advice for the chip's latest reading, without storing it."""
        normalized = normalize_chip_id(chip_id)
        reading = await self._latest_reading(normalized)
        ownership = await self.ownerships.get_by_chip(normalized)

        messages = await self.evaluate(reading, ownership)
        return LatestAdvice(
            chip_id=normalized,
            room_name=ownership.room_name,
            advice=messages or [NOMINAL_MESSAGE],
        )

    async def save_for_reading(self, reading: Reading) -> SaveResult:
        """Store at most one recommendation for a reading.

        A reading that already has a recommendation is reported as not
        saved without evaluating it again. A unique-constraint violation
        from a concurrent insert is reported the same way.

        Raises:
            NotFoundError: The reading's chip has no ownership.
        """
        reading_id, chip_id = reading.id, reading.chip_id
        ownership = await self.ownerships.get_by_chip(chip_id)

        if await self._has_recommendation(reading_id):
            record_recommendation("duplicate")
            logger.info("Recommendation already stored", reading_id=reading_id)
            return SaveResult(saved=False, count=0)

        messages = await self.evaluate(reading, ownership)
        recommendation = Recommendation(
            reading_id=reading_id,
            ownership_id=ownership.id,
            text=join_messages(messages),
            created_at=reading.created_at,
        )
        self.db.add(recommendation)
        try:
            await self.db.commit()
        except IntegrityError as e:
            # rollback expires loaded rows
            await self.db.rollback()
            if await self._has_recommendation(reading_id):
                record_recommendation("duplicate")
                logger.info("Recommendation insert lost to a concurrent writer", reading_id=reading_id)
            else:
                record_recommendation("rejected")
                logger.warning(
                    "Recommendation insert rejected by a constraint",
                    reading_id=reading_id,
                    chip_id=chip_id,
                    error=str(e.orig),
                )
            return SaveResult(saved=False, count=len(messages))

        record_recommendation("saved")
        logger.info(
            "Recommendation saved",
            reading_id=reading_id,
            chip_id=chip_id,
            messages=len(messages),
        )
        return SaveResult(saved=True, count=len(messages))

    async def save_latest(self, chip_id: str) -> SaveResult:
        """Store advice for the chip's latest reading."""
        reading = await self._latest_reading(normalize_chip_id(chip_id))
        return await self.save_for_reading(reading)

    async def history(self, chip_id: str, take: int = 50) -> list[AdviceHistoryItem]:
        """Recent recommendations for a chip, newest first."""
        normalized = normalize_chip_id(chip_id)
        take = max(1, min(take, settings.advice_history_max_take))
        since = datetime.now(timezone.utc) - timedelta(days=settings.advice_history_days)

        result = await self.db.execute(
            select(Recommendation, Ownership.room_name)
            .join(Ownership, Recommendation.ownership_id == Ownership.id)
            .where(Ownership.chip_id == normalized, Recommendation.created_at >= since)
            .order_by(Recommendation.created_at.desc(), Recommendation.id.desc())
            .limit(take)
        )
        return [
            AdviceHistoryItem(created_at=rec.created_at, room_name=room_name, text=rec.text)
            for rec, room_name in result.all()
        ]

    async def _latest_reading(self, chip_id: str) -> Reading:
        result = await self.db.execute(
            select(Reading)
            .where(Reading.chip_id == chip_id)
            .order_by(Reading.created_at.desc(), Reading.id.desc())
            .limit(1)
        )
        reading = result.scalar_one_or_none()
        if reading is None:
            raise NotFoundError(f"No sensor data for chip {chip_id}")
        return reading

    async def _has_recommendation(self, reading_id: int) -> bool:
        result = await self.db.execute(
            select(Recommendation.id).where(Recommendation.reading_id == reading_id)
        )
        return result.scalar_one_or_none() is not None
