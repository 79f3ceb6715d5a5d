"""Reading service for device telemetry.

Ingestion stores the reading first and only then tries to derive advice.
Advice is best effort: any failure there is logged and never undoes or
blocks the stored reading.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from roomcomfort.core.config import settings
from roomcomfort.core.metrics import record_reading_ingested, record_recommendation
from roomcomfort.models.ownership import Ownership
from roomcomfort.models.reading import Reading
from roomcomfort.services.errors import NotFoundError
from roomcomfort.services.ownership_service import normalize_chip_id

logger = structlog.get_logger()

SENSOR_FIELDS = (
    "temperature_dht",
    "humidity_dht",
    "temperature_bme",
    "humidity_bme",
    "pressure",
    "altitude",
    "gas_detected",
    "light",
    "mq2_analog",
    "mq2_analog_percent",
    "light_analog",
    "light_analog_percent",
)


class TimeBucket(str, Enum):
    """Aggregation granularity for chart series."""

    RAW = "raw"
    HOUR = "hour"
    DAY = "day"


@dataclass
class SeriesPoint:
    timestamp: datetime
    temperature: float | None
    humidity: float | None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _bucket_start(value: datetime, bucket: TimeBucket) -> datetime:
    if bucket == TimeBucket.HOUR:
        return value.replace(minute=0, second=0, microsecond=0)
    if bucket == TimeBucket.DAY:
        return value.replace(hour=0, minute=0, second=0, microsecond=0)
    return value


def _average(values: list[float]) -> float | None:
    if not values:
        return None
    return round(sum(values) / len(values), 1)


def _ordered_window(
    from_time: datetime | None,
    to_time: datetime | None,
) -> tuple[datetime | None, datetime | None]:
    if from_time is not None:
        from_time = _as_utc(from_time)
    if to_time is not None:
        to_time = _as_utc(to_time)
    if from_time is not None and to_time is not None and from_time > to_time:
        from_time, to_time = to_time, from_time
    return from_time, to_time


class ReadingService:
    """Service for storing and querying sensor readings."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def ingest(self, payload: dict[str, Any]) -> Reading:
        """Store one reading and try to save advice for it.

        The server assigns ``created_at``; any value in the payload is ignored.
        """
        reading = Reading(
            chip_id=normalize_chip_id(payload.get("chip_id")),
            created_at=datetime.now(timezone.utc),
            **{name: payload.get(name) for name in SENSOR_FIELDS},
        )
        self.db.add(reading)
        await self.db.commit()
        await self.db.refresh(reading)

        record_reading_ingested()
        logger.info("Reading ingested", reading_id=reading.id, chip_id=reading.chip_id)

        await self._save_advice(reading)
        return reading

    async def latest(self, chip_id: str) -> tuple[Reading, str]:
        """Latest reading of a chip with the room name of its ownership.

        The room name is empty for an unowned chip.
        """
        normalized = normalize_chip_id(chip_id)
        result = await self.db.execute(
            select(Reading)
            .where(Reading.chip_id == normalized)
            .order_by(Reading.created_at.desc(), Reading.id.desc())
            .limit(1)
        )
        reading = result.scalar_one_or_none()
        if reading is None:
            raise NotFoundError(f"No sensor data for chip {normalized}")

        room = await self.db.execute(
            select(Ownership.room_name).where(Ownership.chip_id == normalized)
        )
        return reading, room.scalar_one_or_none() or ""

    async def history(
        self,
        chip_id: str,
        take: int = 100,
        from_time: datetime | None = None,
        to_time: datetime | None = None,
    ) -> list[Reading]:
        """Readings of a chip, newest first."""
        normalized = normalize_chip_id(chip_id)
        take = max(1, min(take, settings.reading_history_max_take))
        from_time, to_time = _ordered_window(from_time, to_time)

        query = select(Reading).where(Reading.chip_id == normalized)
        if from_time is not None:
            query = query.where(Reading.created_at >= from_time)
        if to_time is not None:
            query = query.where(Reading.created_at <= to_time)

        result = await self.db.execute(
            query.order_by(Reading.created_at.desc(), Reading.id.desc()).limit(take)
        )
        return list(result.scalars().all())

    async def series(
        self,
        chip_id: str,
        bucket: TimeBucket = TimeBucket.RAW,
        from_time: datetime | None = None,
        to_time: datetime | None = None,
    ) -> list[SeriesPoint]:
        """Chart points in chronological order.

        Hour and day buckets average the temperature and humidity of the
        readings that fall into them. The default window ends now and spans
        seven days for day buckets, one day otherwise.
        """
        normalized = normalize_chip_id(chip_id)
        from_time, to_time = _ordered_window(from_time, to_time)
        if to_time is None:
            to_time = datetime.now(timezone.utc)
        if from_time is None:
            from_time = to_time - timedelta(days=7 if bucket == TimeBucket.DAY else 1)
        if from_time > to_time:
            from_time, to_time = to_time, from_time

        result = await self.db.execute(
            select(Reading)
            .where(
                Reading.chip_id == normalized,
                Reading.created_at >= from_time,
                Reading.created_at <= to_time,
            )
            .order_by(Reading.created_at, Reading.id)
        )

        groups: dict[datetime, tuple[list[float], list[float]]] = {}
        for reading in result.scalars().all():
            key = _bucket_start(_as_utc(reading.created_at), bucket)
            if bucket == TimeBucket.RAW:
                key = _as_utc(reading.created_at)
            temperatures, humidities = groups.setdefault(key, ([], []))
            if reading.temperature is not None:
                temperatures.append(reading.temperature)
            if reading.humidity is not None:
                humidities.append(reading.humidity)

        return [
            SeriesPoint(
                timestamp=key,
                temperature=_average(temperatures),
                humidity=_average(humidities),
            )
            for key, (temperatures, humidities) in groups.items()
        ]

    async def _save_advice(self, reading: Reading) -> None:
        from roomcomfort.services.advice_service import AdviceService

        try:
            await AdviceService(self.db).save_for_reading(reading)
        except NotFoundError:
            logger.info("Advice skipped for unowned chip", chip_id=reading.chip_id)
        except Exception as e:
            reading_id, chip_id = reading.id, reading.chip_id
            await self.db.rollback()
            await self.db.refresh(reading)
            record_recommendation("failed")
            logger.warning(
                "Advice generation failed for reading",
                reading_id=reading_id,
                chip_id=chip_id,
                error=str(e),
            )
