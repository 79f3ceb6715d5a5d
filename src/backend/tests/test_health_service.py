"""Tests for HealthService."""

import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy import delete

from roomcomfort import __version__
from roomcomfort.models import Threshold
from roomcomfort.services.health_service import (
    HealthService,
    HealthStatus,
    ComponentHealth,
    SystemHealth,
)


class TestSystemHealth:
    def test_status_follows_worst_component(self):
        health = SystemHealth(
            components=[
                ComponentHealth(name="database", status=HealthStatus.HEALTHY),
                ComponentHealth(name="reference_data", status=HealthStatus.UNHEALTHY),
            ]
        )

        assert health.status == HealthStatus.UNHEALTHY

    def test_to_dict(self):
        health = SystemHealth(
            components=[
                ComponentHealth(
                    name="database",
                    status=HealthStatus.HEALTHY,
                    message="OK",
                    latency_ms=5.0,
                )
            ],
        )

        result = health.to_dict()

        assert result["status"] == "healthy"
        assert result["version"] == __version__
        assert result["components"] == [
            {"name": "database", "status": "healthy", "message": "OK", "latency_ms": 5.0}
        ]


class TestHealthService:
    @pytest.fixture
    def health_service(self):
        return HealthService()

    async def test_check_database_healthy(self, health_service):
        mock_session = AsyncMock()
        mock_session.execute.return_value = MagicMock()

        result = await health_service.check_database(mock_session)

        assert result.name == "database"
        assert result.status == HealthStatus.HEALTHY
        assert result.latency_ms is not None
        mock_session.execute.assert_called_once()

    async def test_check_database_unhealthy(self, health_service):
        mock_session = AsyncMock()
        mock_session.execute.side_effect = Exception("Connection refused")

        result = await health_service.check_database(mock_session)

        assert result.status == HealthStatus.UNHEALTHY
        assert "Connection failed" in result.message

    async def test_readiness_skips_reference_data_without_database(self, health_service):
        mock_session = AsyncMock()
        mock_session.execute.side_effect = Exception("Connection refused")

        result = await health_service.get_readiness(mock_session)

        assert result.status == HealthStatus.UNHEALTHY
        assert [c.name for c in result.components] == ["database"]

    async def test_seeded_database_is_ready(self, health_service, db_session):
        result = await health_service.get_readiness(db_session)

        assert result.status == HealthStatus.HEALTHY
        assert [c.name for c in result.components] == ["database", "reference_data"]
        assert result.components[1].message == "3 thresholds"

    async def test_missing_threshold_is_not_ready(self, health_service, db_session):
        await db_session.execute(delete(Threshold).where(Threshold.name == "gas"))
        await db_session.commit()

        result = await health_service.get_readiness(db_session)

        assert result.status == HealthStatus.UNHEALTHY
        assert result.components[1].message == "Missing threshold gas"

    def test_liveness(self, health_service):
        result = health_service.get_liveness()
        assert result.status == HealthStatus.HEALTHY
        assert result.components[0].name == "application"
