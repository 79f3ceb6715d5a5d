"""Threshold service for base comfort bounds."""

import json
from pathlib import Path
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from roomcomfort.models.threshold import Threshold
from roomcomfort.services.errors import InvalidInputError, NotFoundError

logger = structlog.get_logger()


def normalize_threshold_name(name: str | None) -> str:
    """Threshold names are compared case-insensitively and stored lower-cased."""
    normalized = (name or "").strip().lower()
    if not normalized:
        raise InvalidInputError("Threshold name is required")
    return normalized


def load_threshold_defaults(path: str | Path) -> list[dict[str, Any]]:
    """Read default threshold rows from a JSON seed file."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"Threshold seed file {path} must contain a JSON array")
    return data


class ThresholdService:
    """Service for reading and maintaining base thresholds."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_thresholds(self) -> list[Threshold]:
        result = await self.db.execute(select(Threshold).order_by(Threshold.name))
        return list(result.scalars().all())

    async def find_threshold(self, name: str) -> Threshold | None:
        """Get a threshold by name, or None."""
        result = await self.db.execute(
            select(Threshold).where(Threshold.name == normalize_threshold_name(name))
        )
        return result.scalar_one_or_none()

    async def get_threshold(self, name: str) -> Threshold:
        """Get a threshold by name, raising NotFoundError when absent."""
        threshold = await self.find_threshold(name)
        if threshold is None:
            raise NotFoundError(f"Threshold '{name}' not found")
        return threshold

    async def upsert_threshold(
        self,
        name: str,
        low_value: float | None = None,
        high_value: float | None = None,
        low_message: str | None = None,
        high_message: str | None = None,
    ) -> Threshold:
        """Create a threshold or replace the bounds and messages of an existing one."""
        normalized = normalize_threshold_name(name)
        if low_value is not None and high_value is not None and low_value > high_value:
            raise InvalidInputError("Low value must not exceed high value")

        threshold = await self.find_threshold(normalized)
        if threshold is None:
            threshold = Threshold(name=normalized)
            self.db.add(threshold)

        threshold.low_value = low_value
        threshold.high_value = high_value
        threshold.low_message = low_message
        threshold.high_message = high_message

        await self.db.commit()
        await self.db.refresh(threshold)

        logger.info(
            "Threshold upserted",
            name=normalized,
            low=low_value,
            high=high_value,
        )
        return threshold

    async def seed_thresholds(self, defaults: list[dict[str, Any]]) -> int:
        """Insert default thresholds whose names are not present yet.

        Existing rows are never overwritten. Returns the number inserted.
        """
        existing = {t.name for t in await self.list_thresholds()}
        inserted = 0
        for row in defaults:
            name = normalize_threshold_name(row.get("name"))
            if name in existing:
                continue
            self.db.add(
                Threshold(
                    name=name,
                    low_value=row.get("low_value"),
                    high_value=row.get("high_value"),
                    low_message=row.get("low_message"),
                    high_message=row.get("high_message"),
                )
            )
            existing.add(name)
            inserted += 1

        if inserted:
            await self.db.commit()
        logger.info("Thresholds seeded", inserted=inserted)
        return inserted
