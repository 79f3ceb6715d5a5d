"""Ownership service binding chips to users and rooms."""

from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from roomcomfort.models.ownership import Ownership
from roomcomfort.models.reading import Reading
from roomcomfort.models.user import User
from roomcomfort.services.errors import ConflictError, InvalidInputError, NotFoundError
from roomcomfort.services.versioning import VersionedUpdateResult, format_etag, update_versioned

logger = structlog.get_logger()


def normalize_chip_id(chip_id: str | None) -> str:
    """Trim and upper-case a chip id; every lookup and write goes through this."""
    normalized = (chip_id or "").strip().upper()
    if not normalized:
        raise InvalidInputError("Chip id is required")
    return normalized


def ownership_etag(ownership: Ownership) -> str:
    return format_etag(ownership.chip_id, ownership.version)


def _required(value: str | None, field: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        raise InvalidInputError(f"{field} must not be empty")
    return stripped


@dataclass
class RoomSummary:
    """Ownership with the live values of its chip's latest reading."""

    id: int
    chip_id: str
    room_name: str
    image_name: str
    temperature: float | None = None
    humidity: float | None = None

    @classmethod
    def from_ownership(cls, ownership: Ownership, latest: Reading | None) -> "RoomSummary":
        return cls(
            id=ownership.id,
            chip_id=ownership.chip_id,
            room_name=ownership.room_name,
            image_name=ownership.image_name,
            temperature=latest.temperature if latest else None,
            humidity=latest.humidity if latest else None,
        )


@dataclass
class DeviceSync:
    """What a device needs to label itself."""

    username: str
    room_name: str
    image_name: str
    etag: str
    last_modified: datetime


class OwnershipService:
    """Service for the chip ownership lifecycle.

    A chip has at most one owner across all users.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_chip(self, chip_id: str) -> Ownership | None:
        result = await self.db.execute(
            select(Ownership).where(Ownership.chip_id == normalize_chip_id(chip_id))
        )
        return result.scalar_one_or_none()

    async def get_by_chip(self, chip_id: str) -> Ownership:
        """Get the ownership of a chip, raising NotFoundError when unowned."""
        ownership = await self.find_by_chip(chip_id)
        if ownership is None:
            raise NotFoundError(f"Chip {normalize_chip_id(chip_id)} is not registered")
        return ownership

    async def get_for_user(self, chip_id: str, user: User) -> Ownership:
        """Get a chip's ownership if ``user`` owns it or is an admin.

        Chips owned by someone else are reported as not found.
        """
        ownership = await self.get_by_chip(chip_id)
        if ownership.user_id != user.id and not user.is_admin:
            raise NotFoundError(f"Chip {ownership.chip_id} is not registered")
        return ownership

    async def register(
        self,
        chip_id: str,
        user_id: int,
        room_name: str,
        image_name: str,
    ) -> Ownership:
        """Register a chip to a user's room."""
        normalized = normalize_chip_id(chip_id)
        room_name = _required(room_name, "Room name")
        image_name = _required(image_name, "Image name")

        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        if await self.find_by_chip(normalized) is not None:
            raise ConflictError(f"Chip {normalized} is already registered")

        ownership = Ownership(
            chip_id=normalized,
            user_id=user_id,
            room_name=room_name,
            image_name=image_name,
            version=1,
        )
        self.db.add(ownership)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(f"Chip {normalized} is already registered")
        await self.db.refresh(ownership)

        logger.info("Ownership registered", chip_id=normalized, user_id=user_id)
        return ownership

    async def update(
        self,
        chip_id: str,
        if_match: str | None,
        room_name: str | None = None,
        image_name: str | None = None,
    ) -> VersionedUpdateResult:
        """Change room and image names under an If-Match precondition.

        Omitted fields keep their value. Supplied fields must not be blank.
        """
        normalized = normalize_chip_id(chip_id)
        wanted: dict[str, str] = {}
        if room_name is not None:
            wanted["room_name"] = _required(room_name, "Room name")
        if image_name is not None:
            wanted["image_name"] = _required(image_name, "Image name")

        result = await update_versioned(
            self.db,
            resource="ownership",
            load=lambda: self.find_by_chip(normalized),
            changes=lambda _: wanted,
            etag_of=ownership_etag,
            if_match=if_match,
        )
        if result.changed:
            logger.info("Ownership updated", chip_id=normalized, etag=result.etag)
        return result

    async def delete(self, chip_id: str, user_id: int) -> None:
        """Delete the ownership of ``chip_id`` held by ``user_id``."""
        normalized = normalize_chip_id(chip_id)
        result = await self.db.execute(
            select(Ownership).where(
                Ownership.chip_id == normalized,
                Ownership.user_id == user_id,
            )
        )
        ownership = result.scalar_one_or_none()
        if ownership is None:
            raise NotFoundError(f"Chip {normalized} is not registered to user {user_id}")

        await self.db.delete(ownership)
        await self.db.commit()
        logger.info("Ownership deleted", chip_id=normalized, user_id=user_id)

    async def rooms_by_user(self, user_id: int) -> list[RoomSummary]:
        """List a user's rooms with their latest temperature and humidity."""
        result = await self.db.execute(
            select(Ownership)
            .where(Ownership.user_id == user_id)
            .order_by(Ownership.id)
        )
        rooms = []
        for ownership in result.scalars().all():
            latest = await self._latest_reading(ownership.chip_id)
            rooms.append(RoomSummary.from_ownership(ownership, latest))
        return rooms

    async def room_summary(self, ownership: Ownership) -> RoomSummary:
        latest = await self._latest_reading(ownership.chip_id)
        return RoomSummary.from_ownership(ownership, latest)

    async def sync_for_device(self, chip_id: str) -> DeviceSync:
        """Get the labels a device displays, with its version tag."""
        ownership = await self.get_by_chip(chip_id)
        return DeviceSync(
            username=ownership.user.username if ownership.user else "",
            room_name=ownership.room_name or "",
            image_name=ownership.image_name or "",
            etag=ownership_etag(ownership),
            last_modified=ownership.updated_at,
        )

    async def _latest_reading(self, chip_id: str) -> Reading | None:
        result = await self.db.execute(
            select(Reading)
            .where(Reading.chip_id == chip_id)
            .order_by(Reading.created_at.desc(), Reading.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
