"""API Routes Module."""

from fastapi import APIRouter

from roomcomfort.api import sensor_data, settings, users

router = APIRouter()

router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(sensor_data.router, prefix="/sensordata", tags=["Sensor Data"])
router.include_router(settings.router, prefix="/settings", tags=["Settings"])
