"""Tests for the chip ownership lifecycle."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from roomcomfort.models.ownership import Ownership
from roomcomfort.models.reading import Reading
from roomcomfort.services.errors import (
    ConflictError,
    InvalidInputError,
    NotFoundError,
    PreconditionFailedError,
    PreconditionRequiredError,
)
from roomcomfort.services.ownership_service import OwnershipService, normalize_chip_id


@pytest.fixture
def ownership_service(db_session) -> OwnershipService:
    return OwnershipService(db_session)


async def _stored(db_session, chip_id: str) -> Ownership:
    result = await db_session.execute(
        select(Ownership)
        .where(Ownership.chip_id == chip_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


class TestNormalizeChipId:
    def test_trims_and_upper_cases(self):
        assert normalize_chip_id("  esp-07 ") == "ESP-07"

    def test_blank_rejected(self):
        with pytest.raises(InvalidInputError):
            normalize_chip_id("   ")
        with pytest.raises(InvalidInputError):
            normalize_chip_id(None)


class TestRegister:
    """Tests for OwnershipService.register."""

    async def test_register_normalizes_chip_id(self, ownership_service, test_user):
        ownership = await ownership_service.register("esp-07 ", test_user.id, " Bedroom ", "bed.png")

        assert ownership.chip_id == "ESP-07"
        assert ownership.room_name == "Bedroom"
        assert ownership.version == 1

    async def test_second_registration_conflicts(self, ownership_service, test_user, other_user):
        await ownership_service.register("esp-07 ", test_user.id, "Bedroom", "bed.png")

        with pytest.raises(ConflictError):
            await ownership_service.register(" Esp-07", other_user.id, "Kitchen", "kitchen.png")
        with pytest.raises(ConflictError):
            await ownership_service.register("ESP-07", test_user.id, "Office", "office.png")

    async def test_racing_insert_conflicts(self, ownership_service, test_ownership, other_user):
        """The unique index catches a duplicate that slipped past the lookup."""
        with patch.object(ownership_service, "find_by_chip", AsyncMock(return_value=None)):
            with pytest.raises(ConflictError):
                await ownership_service.register("ESP-07", other_user.id, "Kitchen", "k.png")

    async def test_required_fields(self, ownership_service, test_user):
        with pytest.raises(InvalidInputError):
            await ownership_service.register("ESP-07", test_user.id, "  ", "bed.png")
        with pytest.raises(InvalidInputError):
            await ownership_service.register("ESP-07", test_user.id, "Bedroom", "")
        with pytest.raises(InvalidInputError):
            await ownership_service.register(" ", test_user.id, "Bedroom", "bed.png")

    async def test_unknown_user(self, ownership_service):
        with pytest.raises(NotFoundError):
            await ownership_service.register("ESP-07", 999, "Bedroom", "bed.png")


class TestUpdate:
    """Tests for OwnershipService.update."""

    async def test_update_bumps_version(self, ownership_service, db_session, test_ownership):
        result = await ownership_service.update("esp-07", '"ESP-07-1"', room_name="Office")

        assert result.changed is True
        assert result.etag == '"ESP-07-2"'
        stored = await _stored(db_session, "ESP-07")
        assert stored.room_name == "Office"
        assert stored.image_name == "bedroom.png"
        assert stored.version == 2

    async def test_identical_values_are_a_no_op(self, ownership_service, db_session, test_ownership):
        first = await ownership_service.update(
            "ESP-07", '"ESP-07-1"', room_name="Bedroom", image_name="bedroom.png"
        )
        second = await ownership_service.update(
            "ESP-07", first.etag, room_name=" Bedroom ", image_name="bedroom.png"
        )

        assert first.etag == second.etag == '"ESP-07-1"'
        assert (await _stored(db_session, "ESP-07")).version == 1

    async def test_stale_tag_rejected(self, ownership_service, db_session, test_ownership):
        etag = '"ESP-07-1"'
        for room in ("Office", "Kitchen", "Hall"):
            etag = (await ownership_service.update("ESP-07", etag, room_name=room)).etag
        assert etag == '"ESP-07-4"'

        with pytest.raises(PreconditionFailedError):
            await ownership_service.update("ESP-07", '"ESP-07-3"', room_name="Attic")

        stored = await _stored(db_session, "ESP-07")
        assert stored.room_name == "Hall"
        assert stored.version == 4

    async def test_missing_tag_rejected(self, ownership_service, test_ownership):
        with pytest.raises(PreconditionRequiredError):
            await ownership_service.update("ESP-07", None, room_name="Office")

    async def test_blank_field_rejected(self, ownership_service, test_ownership):
        with pytest.raises(InvalidInputError):
            await ownership_service.update("ESP-07", '"ESP-07-1"', image_name="   ")

    async def test_unknown_chip(self, ownership_service):
        with pytest.raises(NotFoundError):
            await ownership_service.update("ESP-404", '"ESP-404-1"', room_name="Office")


class TestDelete:
    async def test_delete_by_owner(self, ownership_service, db_session, test_ownership, test_user):
        await ownership_service.delete(" esp-07", test_user.id)

        assert await ownership_service.find_by_chip("ESP-07") is None

    async def test_delete_by_non_owner(self, ownership_service, test_ownership, other_user):
        with pytest.raises(NotFoundError):
            await ownership_service.delete("ESP-07", other_user.id)
        assert await ownership_service.find_by_chip("ESP-07") is not None

    async def test_delete_unknown_chip(self, ownership_service, test_user):
        with pytest.raises(NotFoundError):
            await ownership_service.delete("ESP-404", test_user.id)


class TestQueries:
    async def test_rooms_by_user_with_latest_values(
        self, ownership_service, db_session, test_ownership, test_user
    ):
        now = datetime.now(timezone.utc)
        db_session.add_all(
            [
                Reading(chip_id="ESP-07", temperature_dht=19.0, humidity_dht=40.0,
                        created_at=now - timedelta(minutes=5)),
                Reading(chip_id="ESP-07", temperature_bme=22.5, humidity_dht=41.0, created_at=now),
            ]
        )
        await db_session.commit()
        await ownership_service.register("ESP-08", test_user.id, "Kitchen", "kitchen.png")

        rooms = await ownership_service.rooms_by_user(test_user.id)

        assert [r.chip_id for r in rooms] == ["ESP-07", "ESP-08"]
        assert rooms[0].temperature == 22.5
        assert rooms[0].humidity == 41.0
        assert rooms[1].temperature is None
        assert rooms[1].humidity is None

    async def test_rooms_by_user_without_ownerships(self, ownership_service, other_user):
        assert await ownership_service.rooms_by_user(other_user.id) == []

    async def test_get_for_user(self, ownership_service, test_ownership, test_user, other_user, admin_user):
        assert (await ownership_service.get_for_user("esp-07", test_user)).id == test_ownership.id
        assert (await ownership_service.get_for_user("ESP-07", admin_user)).id == test_ownership.id
        with pytest.raises(NotFoundError):
            await ownership_service.get_for_user("ESP-07", other_user)

    async def test_sync_for_device(self, ownership_service, test_ownership):
        sync = await ownership_service.sync_for_device("esp-07")

        assert sync.username == "alice"
        assert sync.room_name == "Bedroom"
        assert sync.image_name == "bedroom.png"
        assert sync.etag == '"ESP-07-1"'
        assert sync.last_modified is not None

    async def test_sync_for_unknown_device(self, ownership_service):
        with pytest.raises(NotFoundError):
            await ownership_service.sync_for_device("ESP-404")
