"""Tests for scoped threshold adjustments."""

from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from roomcomfort.models.threshold import ThresholdAdjustment
from roomcomfort.services.adjustment_service import AbsoluteItem, AdjustmentService
from roomcomfort.services.errors import (
    InvalidInputError,
    NotFoundError,
    PreconditionFailedError,
    PreconditionRequiredError,
)
from roomcomfort.services.threshold_service import ThresholdService


@pytest.fixture
def adjustment_service(db_session) -> AdjustmentService:
    return AdjustmentService(db_session)


async def _temperature_id(db_session) -> int:
    return (await ThresholdService(db_session).get_threshold("temperature")).id


async def _adjustment_count(db_session) -> int:
    result = await db_session.execute(select(func.count(ThresholdAdjustment.id)))
    return result.scalar_one()


class TestGetAdjustment:
    async def test_never_adjusted_reports_version_zero(
        self, adjustment_service, db_session, test_ownership, test_user
    ):
        view = await adjustment_service.get_adjustment("esp-07", "Temperature")

        threshold_id = await _temperature_id(db_session)
        assert view.parameter_name == "temperature"
        assert (view.low_delta, view.high_delta) == (0.0, 0.0)
        assert view.version == 0
        assert view.etag == f'"{test_user.id}-{threshold_id}-{test_ownership.id}-0"'

    async def test_unknown_parameter(self, adjustment_service, test_ownership):
        with pytest.raises(NotFoundError):
            await adjustment_service.get_adjustment("ESP-07", "co2")

    async def test_unknown_chip(self, adjustment_service):
        with pytest.raises(NotFoundError):
            await adjustment_service.get_adjustment("ESP-404", "temperature")


class TestPutAdjustment:
    """Tests for AdjustmentService.put_adjustment."""

    async def test_first_write_requires_precondition(self, adjustment_service, test_ownership):
        with pytest.raises(PreconditionRequiredError):
            await adjustment_service.put_adjustment("ESP-07", "temperature", None, high_delta=3.0)

    async def test_first_write_creates_version_one(self, adjustment_service, test_ownership):
        initial = await adjustment_service.get_adjustment("ESP-07", "temperature")

        view = await adjustment_service.put_adjustment(
            "ESP-07", "temperature", initial.etag, high_delta=3.0
        )

        assert view.version == 1
        assert view.high_delta == 3.0
        assert view.low_delta == 0.0
        assert view.etag.endswith('-1"')

    async def test_first_write_with_wrong_tag(self, adjustment_service, db_session, test_ownership):
        with pytest.raises(PreconditionFailedError):
            await adjustment_service.put_adjustment("ESP-07", "temperature", '"1-1-1-5"', high_delta=3.0)
        assert await _adjustment_count(db_session) == 0

    async def test_racing_first_write(self, adjustment_service, db_session, test_ownership):
        initial = await adjustment_service.get_adjustment("ESP-07", "temperature")

        with patch.object(
            db_session,
            "commit",
            side_effect=IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")),
        ):
            with pytest.raises(PreconditionFailedError):
                await adjustment_service.put_adjustment(
                    "ESP-07", "temperature", initial.etag, high_delta=3.0
                )

    async def test_update_existing(self, adjustment_service, test_ownership):
        initial = await adjustment_service.get_adjustment("ESP-07", "temperature")
        first = await adjustment_service.put_adjustment(
            "ESP-07", "temperature", initial.etag, high_delta=3.0
        )

        second = await adjustment_service.put_adjustment(
            "ESP-07", "temperature", first.etag, low_delta=-1.0
        )

        assert second.version == 2
        assert (second.low_delta, second.high_delta) == (-1.0, 3.0)

    async def test_stale_tag_rejected(self, adjustment_service, test_ownership):
        initial = await adjustment_service.get_adjustment("ESP-07", "temperature")
        await adjustment_service.put_adjustment("ESP-07", "temperature", initial.etag, high_delta=3.0)

        with pytest.raises(PreconditionFailedError):
            await adjustment_service.put_adjustment(
                "ESP-07", "temperature", initial.etag, high_delta=5.0
            )
        current = await adjustment_service.get_adjustment("ESP-07", "temperature")
        assert current.high_delta == 3.0
        assert current.version == 1

    async def test_same_values_are_a_no_op(self, adjustment_service, test_ownership):
        initial = await adjustment_service.get_adjustment("ESP-07", "temperature")
        first = await adjustment_service.put_adjustment(
            "ESP-07", "temperature", initial.etag, high_delta=3.0
        )

        again = await adjustment_service.put_adjustment(
            "ESP-07", "temperature", first.etag, high_delta=3.0
        )

        assert again.version == 1
        assert again.etag == first.etag

    async def test_effective_reflects_adjustment(self, adjustment_service, test_ownership):
        initial = await adjustment_service.get_adjustment("ESP-07", "temperature")
        await adjustment_service.put_adjustment("ESP-07", "temperature", initial.etag, high_delta=3.0)

        effective = {e.name: e for e in await adjustment_service.effective("ESP-07")}

        assert effective["temperature"].high == 28.0
        assert effective["humidity"].high == 60.0


class TestSaveAbsolute:
    """Tests for AdjustmentService.save_absolute."""

    async def test_absolute_values_become_deltas(self, adjustment_service, test_ownership, test_user):
        user_id, applied = await adjustment_service.save_absolute(
            "ESP-07",
            [
                AbsoluteItem("Temperature", low=17.0, high=27.0),
                AbsoluteItem("humidity", high=55.0),
            ],
        )

        assert user_id == test_user.id
        temperature, humidity = applied
        assert (temperature.low_delta, temperature.high_delta) == (-1.0, 2.0)
        assert (temperature.effective_low, temperature.effective_high) == (17.0, 27.0)
        assert temperature.version == 1
        assert (humidity.low_delta, humidity.high_delta) == (0.0, -5.0)
        assert humidity.effective_low == 30.0

    async def test_omitted_value_keeps_current_delta(self, adjustment_service, test_ownership):
        await adjustment_service.save_absolute("ESP-07", [AbsoluteItem("temperature", low=16.0, high=27.0)])

        _, applied = await adjustment_service.save_absolute(
            "ESP-07", [AbsoluteItem("temperature", high=26.0)]
        )

        assert applied[0].low_delta == -2.0
        assert applied[0].high_delta == 1.0
        assert applied[0].version == 2

    async def test_absent_base_keeps_delta(self, adjustment_service, test_ownership):
        _, applied = await adjustment_service.save_absolute(
            "ESP-07", [AbsoluteItem("gas", low=10.0, high=70.0)]
        )

        assert applied[0].low_delta == 0.0
        assert applied[0].effective_low is None
        assert applied[0].effective_high == 70.0

    async def test_unknown_parameter_skipped(self, adjustment_service, db_session, test_ownership):
        _, applied = await adjustment_service.save_absolute(
            "ESP-07", [AbsoluteItem("co2", high=900.0)]
        )

        assert applied == []
        assert await _adjustment_count(db_session) == 0

    async def test_empty_items_rejected(self, adjustment_service, test_ownership):
        with pytest.raises(InvalidInputError):
            await adjustment_service.save_absolute("ESP-07", [])

    async def test_unchanged_values_keep_version(self, adjustment_service, test_ownership):
        await adjustment_service.save_absolute("ESP-07", [AbsoluteItem("temperature", high=27.0)])
        _, applied = await adjustment_service.save_absolute(
            "ESP-07", [AbsoluteItem("temperature", high=27.0)]
        )
        assert applied[0].version == 1

    async def test_lost_race_leaves_batch_unapplied(self, adjustment_service, test_ownership):
        await adjustment_service.save_absolute(
            "ESP-07",
            [AbsoluteItem("temperature", high=27.0), AbsoluteItem("humidity", high=55.0)],
        )
        find = adjustment_service._find

        async def find_hiding_humidity(ownership, threshold):
            if threshold.name == "humidity":
                return None
            return await find(ownership, threshold)

        with patch.object(adjustment_service, "_find", new=find_hiding_humidity):
            with pytest.raises(PreconditionFailedError):
                await adjustment_service.save_absolute(
                    "ESP-07",
                    [AbsoluteItem("temperature", high=20.0), AbsoluteItem("humidity", high=50.0)],
                )

        temperature = await adjustment_service.get_adjustment("ESP-07", "temperature")
        humidity = await adjustment_service.get_adjustment("ESP-07", "humidity")
        assert (temperature.high_delta, temperature.version) == (2.0, 1)
        assert (humidity.high_delta, humidity.version) == (-5.0, 1)
