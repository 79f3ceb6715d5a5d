"""Threshold, adjustment and advice API endpoints."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Header, Response
from pydantic import Field

from roomcomfort.api.common import CamelModel
from roomcomfort.core.deps import AdminUser, CurrentUser, DbSession
from roomcomfort.services.adjustment_service import AbsoluteItem, AdjustmentService
from roomcomfort.services.advice_service import AdviceService
from roomcomfort.services.ownership_service import OwnershipService
from roomcomfort.services.threshold_service import ThresholdService

router = APIRouter()


# Request schemas
class ThresholdUpsert(CamelModel):
    low_value: float | None = None
    high_value: float | None = None
    low_value_message: str | None = Field(None, max_length=500)
    high_value_message: str | None = Field(None, max_length=500)


class AdjustmentUpdate(CamelModel):
    """Deltas left out keep their stored value."""

    low_delta: float | None = None
    high_delta: float | None = None


class AbsoluteItemIn(CamelModel):
    parameter_name: str
    low: float | None = None
    high: float | None = None


class AbsoluteRequest(CamelModel):
    items: list[AbsoluteItemIn] = Field(default_factory=list)


# Response schemas
class ThresholdOut(CamelModel):
    parameter_name: str
    low_value: float | None = None
    high_value: float | None = None
    low_value_message: str | None = None
    high_value_message: str | None = None


class AdjustmentOut(CamelModel):
    parameter_name: str
    low_delta: float
    high_delta: float
    version: int


class AppliedAdjustmentOut(CamelModel):
    parameter_name: str
    base_low: float | None = None
    base_high: float | None = None
    low_delta: float
    high_delta: float
    version: int
    effective_low: float | None = None
    effective_high: float | None = None


class AbsoluteResponse(CamelModel):
    user_id: int
    items: list[AppliedAdjustmentOut]


class AdviceOut(CamelModel):
    chip_id: str
    room_name: str
    advice: list[str]


class SaveAdviceOut(CamelModel):
    saved: bool
    count: int


class AdviceHistoryOut(CamelModel):
    created_at: datetime
    room_name: str | None = None
    recommendation: str


def _threshold_out(name: str, low, high, low_message, high_message) -> ThresholdOut:
    return ThresholdOut(
        parameter_name=name,
        low_value=low,
        high_value=high,
        low_value_message=low_message,
        high_value_message=high_message,
    )


@router.get("/thresholds", response_model=list[ThresholdOut])
async def list_thresholds(db: DbSession, current_user: CurrentUser) -> list[ThresholdOut]:
    """Base thresholds shared by every chip."""
    thresholds = await ThresholdService(db).list_thresholds()
    return [
        _threshold_out(t.name, t.low_value, t.high_value, t.low_message, t.high_message)
        for t in thresholds
    ]


@router.get("/thresholds/{name}", response_model=ThresholdOut)
async def get_threshold(name: str, db: DbSession, current_user: CurrentUser) -> ThresholdOut:
    t = await ThresholdService(db).get_threshold(name)
    return _threshold_out(t.name, t.low_value, t.high_value, t.low_message, t.high_message)


@router.put("/thresholds/{name}", response_model=ThresholdOut)
async def upsert_threshold(
    name: str,
    data: ThresholdUpsert,
    db: DbSession,
    admin: AdminUser,
) -> ThresholdOut:
    """Create or replace a base threshold (admin only)."""
    t = await ThresholdService(db).upsert_threshold(
        name,
        low_value=data.low_value,
        high_value=data.high_value,
        low_message=data.low_value_message,
        high_message=data.high_value_message,
    )
    return _threshold_out(t.name, t.low_value, t.high_value, t.low_message, t.high_message)


@router.get("/effective/{chip_id}", response_model=list[ThresholdOut])
async def get_effective(chip_id: str, db: DbSession, current_user: CurrentUser) -> list[ThresholdOut]:
    """Thresholds after the chip's adjustments are applied."""
    await OwnershipService(db).get_for_user(chip_id, current_user)
    effective = await AdjustmentService(db).effective(chip_id)
    return [
        _threshold_out(e.name, e.low, e.high, e.low_message, e.high_message)
        for e in effective
    ]


@router.get("/adjustments/{chip_id}/{parameter_name}", response_model=AdjustmentOut)
async def get_adjustment(
    chip_id: str,
    parameter_name: str,
    db: DbSession,
    current_user: CurrentUser,
    response: Response,
) -> AdjustmentOut:
    await OwnershipService(db).get_for_user(chip_id, current_user)
    view = await AdjustmentService(db).get_adjustment(chip_id, parameter_name)
    response.headers["ETag"] = view.etag
    return AdjustmentOut.model_validate(view)


@router.put("/adjustments/{chip_id}/{parameter_name}", response_model=AdjustmentOut)
async def put_adjustment(
    chip_id: str,
    parameter_name: str,
    data: AdjustmentUpdate,
    db: DbSession,
    current_user: CurrentUser,
    response: Response,
    if_match: Annotated[str | None, Header()] = None,
) -> AdjustmentOut:
    """Set a parameter's deltas for a chip; requires If-Match."""
    await OwnershipService(db).get_for_user(chip_id, current_user)
    view = await AdjustmentService(db).put_adjustment(
        chip_id,
        parameter_name,
        if_match=if_match,
        low_delta=data.low_delta,
        high_delta=data.high_delta,
    )
    response.headers["ETag"] = view.etag
    return AdjustmentOut.model_validate(view)


@router.post("/adjustments/{chip_id}", response_model=AbsoluteResponse)
async def save_absolute_adjustments(
    chip_id: str,
    data: AbsoluteRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> AbsoluteResponse:
    """Store absolute bounds from the UI as deltas against the base thresholds."""
    await OwnershipService(db).get_for_user(chip_id, current_user)
    items = [
        AbsoluteItem(parameter_name=i.parameter_name, low=i.low, high=i.high)
        for i in data.items
    ]
    user_id, applied = await AdjustmentService(db).save_absolute(chip_id, items)
    return AbsoluteResponse(
        user_id=user_id,
        items=[AppliedAdjustmentOut.model_validate(a) for a in applied],
    )


@router.get("/advice/{chip_id}/latest", response_model=AdviceOut)
async def get_latest_advice(chip_id: str, db: DbSession, current_user: CurrentUser) -> AdviceOut:
    """Advice for the chip's latest reading, computed on the fly."""
    await OwnershipService(db).get_for_user(chip_id, current_user)
    latest = await AdviceService(db).compute_latest(chip_id)
    return AdviceOut.model_validate(latest)


@router.post("/advice/{chip_id}/save-latest", response_model=SaveAdviceOut)
async def save_latest_advice(chip_id: str, db: DbSession, current_user: CurrentUser) -> SaveAdviceOut:
    await OwnershipService(db).get_for_user(chip_id, current_user)
    result = await AdviceService(db).save_latest(chip_id)
    return SaveAdviceOut.model_validate(result)


@router.get("/advice/{chip_id}/history", response_model=list[AdviceHistoryOut])
async def get_advice_history(
    chip_id: str,
    db: DbSession,
    current_user: CurrentUser,
    take: int = 50,
) -> list[AdviceHistoryOut]:
    """Stored recommendations of the recent days, newest first."""
    await OwnershipService(db).get_for_user(chip_id, current_user)
    items = await AdviceService(db).history(chip_id, take=take)
    return [
        AdviceHistoryOut(created_at=i.created_at, room_name=i.room_name, recommendation=i.text)
        for i in items
    ]
