"""Effective threshold resolution.

Base thresholds are global. A (user, ownership) scope may carry one
adjustment per threshold whose deltas shift the base bounds. A bound the
base does not define stays undefined whatever delta is stored.
"""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from roomcomfort.core.config import settings
from roomcomfort.models.threshold import Threshold, ThresholdAdjustment


@dataclass(frozen=True)
class ThresholdScope:
    """Owner and chip binding that adjustments are keyed on."""

    user_id: int
    ownership_id: int


@dataclass
class EffectiveThreshold:
    """Base bounds combined with the scope's active adjustment."""

    threshold_id: int
    name: str
    base_low: float | None
    base_high: float | None
    low_delta: float
    high_delta: float
    low: float | None
    high: float | None
    low_message: str | None
    high_message: str | None
    version: int = 0


def latest_adjustments(adjustments) -> dict[int, ThresholdAdjustment]:
    """Keep the highest version per threshold id."""
    latest: dict[int, ThresholdAdjustment] = {}
    for adjustment in adjustments:
        current = latest.get(adjustment.threshold_id)
        if current is None or adjustment.version > current.version:
            latest[adjustment.threshold_id] = adjustment
    return latest


def apply_adjustment(base: float | None, delta: float | None) -> float | None:
    """Shift a base bound by a delta; an absent base stays absent."""
    if base is None:
        return None
    return base + (delta or 0.0)


class ThresholdResolver:
    """Resolves effective thresholds for an optional scope."""

    def __init__(self, db: AsyncSession, monitored: list[str] | None = None):
        self.db = db
        self.monitored = monitored if monitored is not None else settings.monitored_parameters

    async def resolve(self, scope: ThresholdScope | None = None) -> dict[str, EffectiveThreshold]:
        """Return effective thresholds keyed by lower-cased name.

        Without a scope the base rows come back unchanged. Missing
        adjustments count as zero deltas.
        """
        result = await self.db.execute(
            select(Threshold)
            .where(Threshold.name.in_(self.monitored))
            .order_by(Threshold.name)
        )
        bases = list(result.scalars().all())

        adjustments: dict[int, ThresholdAdjustment] = {}
        if scope is not None and bases:
            result = await self.db.execute(
                select(ThresholdAdjustment).where(
                    ThresholdAdjustment.user_id == scope.user_id,
                    ThresholdAdjustment.ownership_id == scope.ownership_id,
                    ThresholdAdjustment.threshold_id.in_([b.id for b in bases]),
                )
            )
            adjustments = latest_adjustments(result.scalars().all())

        effective: dict[str, EffectiveThreshold] = {}
        for base in bases:
            adjustment = adjustments.get(base.id)
            low_delta = adjustment.low_delta if adjustment else 0.0
            high_delta = adjustment.high_delta if adjustment else 0.0
            effective[base.name] = EffectiveThreshold(
                threshold_id=base.id,
                name=base.name,
                base_low=base.low_value,
                base_high=base.high_value,
                low_delta=low_delta,
                high_delta=high_delta,
                low=apply_adjustment(base.low_value, low_delta),
                high=apply_adjustment(base.high_value, high_delta),
                low_message=base.low_message,
                high_message=base.high_message,
                version=adjustment.version if adjustment else 0,
            )
        return effective
