"""Liveness and readiness reporting.

Ready means the database answers and the reference data advice depends on
is in place: both roles and a threshold row for every monitored parameter.
"""

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

import structlog
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from roomcomfort import __version__
from roomcomfort.core.config import settings
from roomcomfort.models.role import DEFAULT_ROLES, Role
from roomcomfort.models.threshold import Threshold

logger = structlog.get_logger()


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus
    message: str | None = None
    latency_ms: float | None = None


@dataclass
class SystemHealth:
    """Component checks; the system is unhealthy when any component is."""

    components: list[ComponentHealth] = field(default_factory=list)
    version: str = __version__

    @property
    def status(self) -> HealthStatus:
        if any(c.status == HealthStatus.UNHEALTHY for c in self.components):
            return HealthStatus.UNHEALTHY
        return HealthStatus.HEALTHY

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "components": [{**asdict(c), "status": c.status.value} for c in self.components],
        }


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class HealthService:
    async def check_database(self, session: AsyncSession) -> ComponentHealth:
        start = time.perf_counter()
        try:
            await session.execute(text("SELECT 1"))
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return ComponentHealth(
                name="database",
                status=HealthStatus.UNHEALTHY,
                message=f"Connection failed: {str(e)[:100]}",
                latency_ms=_elapsed_ms(start),
            )
        return ComponentHealth(
            name="database",
            status=HealthStatus.HEALTHY,
            latency_ms=_elapsed_ms(start),
        )

    async def check_reference_data(self, session: AsyncSession) -> ComponentHealth:
        """Report roles and monitored thresholds that seeding has not created."""
        start = time.perf_counter()
        roles = set((await session.execute(select(Role.name))).scalars().all())
        thresholds = set((await session.execute(select(Threshold.name))).scalars().all())

        missing_roles = sorted({r["name"] for r in DEFAULT_ROLES} - roles)
        missing_thresholds = sorted(set(settings.monitored_parameters) - thresholds)
        if not missing_roles and not missing_thresholds:
            return ComponentHealth(
                name="reference_data",
                status=HealthStatus.HEALTHY,
                message=f"{len(thresholds)} thresholds",
                latency_ms=_elapsed_ms(start),
            )

        logger.warning(
            "Reference data incomplete",
            missing_roles=missing_roles,
            missing_thresholds=missing_thresholds,
        )
        missing = [f"role {name}" for name in missing_roles]
        missing += [f"threshold {name}" for name in missing_thresholds]
        return ComponentHealth(
            name="reference_data",
            status=HealthStatus.UNHEALTHY,
            message="Missing " + ", ".join(missing),
            latency_ms=_elapsed_ms(start),
        )

    async def get_readiness(self, session: AsyncSession) -> SystemHealth:
        database = await self.check_database(session)
        if database.status == HealthStatus.UNHEALTHY:
            return SystemHealth(components=[database])
        return SystemHealth(components=[database, await self.check_reference_data(session)])

    def get_liveness(self) -> SystemHealth:
        return SystemHealth(
            components=[
                ComponentHealth(
                    name="application",
                    status=HealthStatus.HEALTHY,
                    message="Application is running",
                )
            ]
        )


health_service = HealthService()
