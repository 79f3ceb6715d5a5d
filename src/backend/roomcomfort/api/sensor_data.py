"""Sensor data and chip ownership API endpoints."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Header, Query, Response, status
from pydantic import Field

from roomcomfort.api.common import NO_CACHE_HEADERS, CamelModel, http_date
from roomcomfort.core.deps import CurrentUser, DbSession, ensure_self_or_admin
from roomcomfort.models.reading import Reading
from roomcomfort.services.ownership_service import OwnershipService, RoomSummary, ownership_etag
from roomcomfort.services.reading_service import ReadingService, TimeBucket
from roomcomfort.services.versioning import etag_matches

router = APIRouter()


# Request schemas
class ReadingIn(CamelModel):
    """Telemetry posted by a device. Absent fields mean the sensor did not report."""

    chip_id: str = Field(..., min_length=1, max_length=64)
    temperature_dht: float | None = None
    humidity_dht: float | None = None
    temperature_bme: float | None = None
    humidity_bme: float | None = None
    pressure: float | None = None
    altitude: float | None = None
    gas_detected: bool | None = None
    light: bool | None = None
    mq2_analog: int | None = None
    mq2_analog_percent: float | None = None
    light_analog: int | None = None
    light_analog_percent: float | None = None


class OwnershipCreate(CamelModel):
    chip_id: str = Field(..., min_length=1, max_length=64)
    room_name: str = Field(..., min_length=1, max_length=100)
    image_name: str = Field(..., min_length=1, max_length=200)
    user_id: int | None = None


class OwnershipUpdate(CamelModel):
    """Fields left out keep their stored value."""

    chip_id: str = Field(..., min_length=1, max_length=64)
    room_name: str | None = Field(None, max_length=100)
    image_name: str | None = Field(None, max_length=200)


# Response schemas
class ReadingCreated(CamelModel):
    message: str
    id: int


class ReadingOut(CamelModel):
    """Stored reading with the room it belongs to."""

    id: int
    chip_id: str
    room_name: str = ""
    temperature_dht: float | None = None
    humidity_dht: float | None = None
    temperature_bme: float | None = None
    humidity_bme: float | None = None
    pressure: float | None = None
    altitude: float | None = None
    gas_detected: bool | None = None
    light: bool | None = None
    mq2_analog: int | None = None
    mq2_analog_percent: float | None = None
    light_analog: int | None = None
    light_analog_percent: float | None = None
    created_at: datetime

    @classmethod
    def from_reading(cls, reading: Reading, room_name: str = "") -> "ReadingOut":
        out = cls.model_validate(reading)
        out.room_name = room_name
        return out


class SeriesPointOut(CamelModel):
    timestamp: datetime
    temperature: float | None = None
    humidity: float | None = None


class RoomOut(CamelModel):
    """A user's room with the live values of its chip."""

    id: int
    chip_id: str
    room_name: str
    image_name: str
    temperature: float | None = None
    humidity: float | None = None

    @classmethod
    def from_summary(cls, summary: RoomSummary) -> "RoomOut":
        return cls.model_validate(summary)


class DeviceSyncOut(CamelModel):
    username: str
    room_name: str
    image_name: str


@router.post("", response_model=ReadingCreated)
async def post_reading(data: ReadingIn, db: DbSession) -> ReadingCreated:
    """Store a reading posted by a device.

    Advice for the reading is derived afterwards on a best effort basis.
    """
    reading = await ReadingService(db).ingest(data.model_dump())
    return ReadingCreated(message="Data saved", id=reading.id)


@router.get("/ownership/user/{user_id}", response_model=list[RoomOut])
async def get_rooms_by_user(user_id: int, db: DbSession, current_user: CurrentUser) -> list[RoomOut]:
    """List a user's rooms with their latest temperature and humidity."""
    ensure_self_or_admin(current_user, user_id)
    rooms = await OwnershipService(db).rooms_by_user(user_id)
    return [RoomOut.from_summary(room) for room in rooms]


@router.get("/ownership/{chip_id}/latest", response_model=DeviceSyncOut)
async def get_ownership_for_device(
    chip_id: str,
    db: DbSession,
    response: Response,
    if_none_match: Annotated[str | None, Header()] = None,
):
    """Labels for a device, with conditional GET support."""
    sync = await OwnershipService(db).sync_for_device(chip_id)
    headers = {
        "ETag": sync.etag,
        "Last-Modified": http_date(sync.last_modified),
        **NO_CACHE_HEADERS,
    }

    if etag_matches(if_none_match, sync.etag):
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers=headers)

    response.headers.update(headers)
    return DeviceSyncOut(
        username=sync.username,
        room_name=sync.room_name,
        image_name=sync.image_name,
    )


@router.post("/ownership", response_model=RoomOut, status_code=status.HTTP_201_CREATED)
async def create_ownership(
    data: OwnershipCreate,
    db: DbSession,
    current_user: CurrentUser,
    response: Response,
) -> RoomOut:
    """Register a chip to a room. Admins may register on behalf of another user."""
    user_id = current_user.id
    if data.user_id is not None and data.user_id != current_user.id:
        ensure_self_or_admin(current_user, data.user_id)
        user_id = data.user_id

    service = OwnershipService(db)
    ownership = await service.register(
        chip_id=data.chip_id,
        user_id=user_id,
        room_name=data.room_name,
        image_name=data.image_name,
    )
    response.headers["ETag"] = ownership_etag(ownership)
    return RoomOut.from_summary(await service.room_summary(ownership))


@router.put("/ownership", status_code=status.HTTP_204_NO_CONTENT)
async def update_ownership(
    data: OwnershipUpdate,
    db: DbSession,
    current_user: CurrentUser,
    if_match: Annotated[str | None, Header()] = None,
) -> Response:
    """Rename a room or change its image; requires If-Match."""
    service = OwnershipService(db)
    await service.get_for_user(data.chip_id, current_user)
    result = await service.update(
        data.chip_id,
        if_match=if_match,
        room_name=data.room_name,
        image_name=data.image_name,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT, headers={"ETag": result.etag})


@router.delete("/ownership/{chip_id}/user/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ownership(
    chip_id: str,
    user_id: int,
    db: DbSession,
    current_user: CurrentUser,
) -> Response:
    ensure_self_or_admin(current_user, user_id)
    await OwnershipService(db).delete(chip_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{chip_id}/latest", response_model=ReadingOut)
async def get_latest_reading(chip_id: str, db: DbSession, current_user: CurrentUser) -> ReadingOut:
    """Latest reading of a chip with its room name."""
    await OwnershipService(db).get_for_user(chip_id, current_user)
    reading, room_name = await ReadingService(db).latest(chip_id)
    return ReadingOut.from_reading(reading, room_name)


@router.get("/{chip_id}/history", response_model=list[ReadingOut])
async def get_reading_history(
    chip_id: str,
    db: DbSession,
    current_user: CurrentUser,
    take: int = 100,
    from_: Annotated[datetime | None, Query(alias="from")] = None,
    to: datetime | None = None,
) -> list[ReadingOut]:
    """Readings of a chip, newest first."""
    ownership = await OwnershipService(db).get_for_user(chip_id, current_user)
    readings = await ReadingService(db).history(chip_id, take=take, from_time=from_, to_time=to)
    return [ReadingOut.from_reading(r, ownership.room_name) for r in readings]


@router.get("/{chip_id}/series", response_model=list[SeriesPointOut])
async def get_reading_series(
    chip_id: str,
    db: DbSession,
    current_user: CurrentUser,
    bucket: TimeBucket = TimeBucket.RAW,
    from_: Annotated[datetime | None, Query(alias="from")] = None,
    to: datetime | None = None,
) -> list[SeriesPointOut]:
    """Chart points for temperature and humidity."""
    await OwnershipService(db).get_for_user(chip_id, current_user)
    points = await ReadingService(db).series(chip_id, bucket=bucket, from_time=from_, to_time=to)
    return [SeriesPointOut.model_validate(p) for p in points]
