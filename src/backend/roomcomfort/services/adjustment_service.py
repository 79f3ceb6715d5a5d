"""Per-chip threshold adjustments.

An adjustment is scoped to the chip's ownership: its owner's user id and
the ownership id. Its version tag is ``"{user}-{threshold}-{ownership}-{version}"``
and a parameter that was never adjusted reports version 0.
"""

from dataclasses import dataclass

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from roomcomfort.core.metrics import record_precondition_failure
from roomcomfort.models.ownership import Ownership
from roomcomfort.models.threshold import Threshold, ThresholdAdjustment
from roomcomfort.services.errors import (
    InvalidInputError,
    PreconditionFailedError,
    PreconditionRequiredError,
)
from roomcomfort.services.ownership_service import OwnershipService
from roomcomfort.services.threshold_resolver import (
    EffectiveThreshold,
    ThresholdResolver,
    ThresholdScope,
    apply_adjustment,
)
from roomcomfort.services.threshold_service import ThresholdService
from roomcomfort.services.versioning import (
    etag_matches,
    format_etag,
    has_precondition,
    update_versioned,
)

logger = structlog.get_logger()


def adjustment_etag(user_id: int, threshold_id: int, ownership_id: int, version: int) -> str:
    return format_etag(user_id, threshold_id, ownership_id, version)


@dataclass
class AdjustmentView:
    """Current deltas of one parameter for one chip."""

    parameter_name: str
    low_delta: float
    high_delta: float
    version: int
    etag: str


@dataclass
class AbsoluteItem:
    """Absolute bounds chosen in the UI for one parameter."""

    parameter_name: str
    low: float | None = None
    high: float | None = None


@dataclass
class AppliedAdjustment:
    parameter_name: str
    base_low: float | None
    base_high: float | None
    low_delta: float
    high_delta: float
    version: int
    effective_low: float | None
    effective_high: float | None


class AdjustmentService:
    """Service for reading and writing scoped threshold adjustments."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ownerships = OwnershipService(db)
        self.thresholds = ThresholdService(db)

    async def effective(self, chip_id: str) -> list[EffectiveThreshold]:
        """Effective thresholds for a chip's owner scope."""
        ownership = await self.ownerships.get_by_chip(chip_id)
        resolved = await ThresholdResolver(self.db).resolve(self._scope(ownership))
        return list(resolved.values())

    async def get_adjustment(self, chip_id: str, parameter_name: str) -> AdjustmentView:
        ownership = await self.ownerships.get_by_chip(chip_id)
        threshold = await self.thresholds.get_threshold(parameter_name)
        row = await self._find(ownership, threshold)
        return self._view(ownership, threshold, row)

    async def put_adjustment(
        self,
        chip_id: str,
        parameter_name: str,
        if_match: str | None,
        low_delta: float | None = None,
        high_delta: float | None = None,
    ) -> AdjustmentView:
        """Set the deltas of one parameter under an If-Match precondition.

        Omitted deltas keep their value. The first write for a parameter
        must match the version 0 tag and creates version 1.
        """
        ownership = await self.ownerships.get_by_chip(chip_id)
        threshold = await self.thresholds.get_threshold(parameter_name)
        row = await self._find(ownership, threshold)

        if row is None:
            return await self._create(ownership, threshold, if_match, low_delta, high_delta)

        wanted: dict[str, float] = {}
        if low_delta is not None:
            wanted["low_delta"] = low_delta
        if high_delta is not None:
            wanted["high_delta"] = high_delta

        async def load() -> ThresholdAdjustment:
            return row

        result = await update_versioned(
            self.db,
            resource="adjustment",
            load=load,
            changes=lambda _: wanted,
            etag_of=lambda adj: adjustment_etag(
                adj.user_id, adj.threshold_id, adj.ownership_id, adj.version
            ),
            if_match=if_match,
        )
        return self._view(ownership, threshold, result.entity)

    async def save_absolute(
        self,
        chip_id: str,
        items: list[AbsoluteItem],
    ) -> tuple[int, list[AppliedAdjustment]]:
        """Store absolute UI bounds as deltas against the base thresholds.

        Unknown parameter names are skipped. An omitted absolute value, or
        one for a bound the base does not define, keeps the current delta.
        The batch is one transaction: a lost race on any item leaves every
        item unchanged.

        Returns:
            The scope's user id and one entry per applied parameter.
        """
        if not items:
            raise InvalidInputError("At least one item is required")

        ownership = await self.ownerships.get_by_chip(chip_id)
        chip, user_id = ownership.chip_id, ownership.user_id
        bases = {t.name: t for t in await self.thresholds.list_thresholds()}

        applied: list[AppliedAdjustment] = []
        for item in items:
            base = bases.get((item.parameter_name or "").strip().lower())
            if base is None:
                continue

            row = await self._find(ownership, base)
            low_delta = row.low_delta if row else 0.0
            high_delta = row.high_delta if row else 0.0
            if base.low_value is not None and item.low is not None:
                low_delta = item.low - base.low_value
            if base.high_value is not None and item.high is not None:
                high_delta = item.high - base.high_value

            if row is None:
                try:
                    row = await self._insert(ownership, base, low_delta, high_delta, commit=False)
                except IntegrityError:
                    record_precondition_failure("adjustment", "race")
                    logger.info("Absolute adjustments rolled back", chip_id=chip, parameter=item.parameter_name)
                    raise PreconditionFailedError("adjustment was modified by another request")
            else:
                current = row

                async def load() -> ThresholdAdjustment:
                    return current

                result = await update_versioned(
                    self.db,
                    resource="adjustment",
                    load=load,
                    changes=lambda _: {"low_delta": low_delta, "high_delta": high_delta},
                    etag_of=lambda adj: adjustment_etag(
                        adj.user_id, adj.threshold_id, adj.ownership_id, adj.version
                    ),
                    if_match=None,
                    require_match=False,
                    commit=False,
                )
                row = result.entity

            applied.append(
                AppliedAdjustment(
                    parameter_name=base.name,
                    base_low=base.low_value,
                    base_high=base.high_value,
                    low_delta=row.low_delta,
                    high_delta=row.high_delta,
                    version=row.version,
                    effective_low=apply_adjustment(base.low_value, row.low_delta),
                    effective_high=apply_adjustment(base.high_value, row.high_delta),
                )
            )

        await self.db.commit()
        logger.info(
            "Absolute adjustments saved",
            chip_id=chip,
            parameters=[a.parameter_name for a in applied],
        )
        return user_id, applied

    async def _create(
        self,
        ownership: Ownership,
        threshold: Threshold,
        if_match: str | None,
        low_delta: float | None,
        high_delta: float | None,
    ) -> AdjustmentView:
        initial = adjustment_etag(ownership.user_id, threshold.id, ownership.id, 0)
        if not has_precondition(if_match):
            record_precondition_failure("adjustment", "missing")
            raise PreconditionRequiredError("If-Match header is required")
        if not etag_matches(if_match, initial):
            record_precondition_failure("adjustment", "mismatch")
            raise PreconditionFailedError("adjustment was modified by another request")

        low = low_delta if low_delta is not None else 0.0
        high = high_delta if high_delta is not None else 0.0
        if low == 0.0 and high == 0.0:
            return self._view(ownership, threshold, None)

        try:
            row = await self._insert(ownership, threshold, low, high)
        except IntegrityError:
            record_precondition_failure("adjustment", "race")
            raise PreconditionFailedError("adjustment was modified by another request")
        return self._view(ownership, threshold, row)

    async def _insert(
        self,
        ownership: Ownership,
        threshold: Threshold,
        low_delta: float,
        high_delta: float,
        commit: bool = True,
    ) -> ThresholdAdjustment:
        """Insert version 1; without ``commit`` the row is only flushed."""
        row = ThresholdAdjustment(
            user_id=ownership.user_id,
            ownership_id=ownership.id,
            threshold_id=threshold.id,
            low_delta=low_delta,
            high_delta=high_delta,
            version=1,
        )
        self.db.add(row)
        try:
            if commit:
                await self.db.commit()
            else:
                await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise
        await self.db.refresh(row)
        logger.info(
            "Adjustment created",
            chip_id=ownership.chip_id,
            parameter=threshold.name,
        )
        return row

    async def _find(self, ownership: Ownership, threshold: Threshold) -> ThresholdAdjustment | None:
        result = await self.db.execute(
            select(ThresholdAdjustment)
            .where(
                ThresholdAdjustment.user_id == ownership.user_id,
                ThresholdAdjustment.ownership_id == ownership.id,
                ThresholdAdjustment.threshold_id == threshold.id,
            )
            .order_by(ThresholdAdjustment.version.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _scope(ownership: Ownership) -> ThresholdScope:
        return ThresholdScope(user_id=ownership.user_id, ownership_id=ownership.id)

    @staticmethod
    def _view(
        ownership: Ownership,
        threshold: Threshold,
        row: ThresholdAdjustment | None,
    ) -> AdjustmentView:
        version = row.version if row else 0
        return AdjustmentView(
            parameter_name=threshold.name,
            low_delta=row.low_delta if row else 0.0,
            high_delta=row.high_delta if row else 0.0,
            version=version,
            etag=adjustment_etag(ownership.user_id, threshold.id, ownership.id, version),
        )
