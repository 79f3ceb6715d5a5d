"""RoomComfort FastAPI Application Entry Point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from roomcomfort import __version__
from roomcomfort.api import router as api_router
from roomcomfort.core.config import settings
from roomcomfort.core.deps import async_session_factory, get_db
from roomcomfort.services.errors import AuthenticationError, ComfortError
from roomcomfort.services.health_service import health_service
from roomcomfort.services.role_service import RoleService
from roomcomfort.services.threshold_service import ThresholdService, load_threshold_defaults

logger = structlog.get_logger()


async def seed_reference_data(session: AsyncSession) -> None:
    """Insert the default roles and thresholds that are missing."""
    await RoleService(session).seed_default_roles()
    defaults = load_threshold_defaults(settings.threshold_seed_file)
    await ThresholdService(session).seed_thresholds(defaults)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    logger.info("Starting application", app_name=settings.app_name, environment=settings.environment)

    async with async_session_factory() as session:
        await seed_reference_data(session)

    yield

    # Shutdown
    logger.info("Shutting down RoomComfort application")


fastapi_app = FastAPI(
    title="RoomComfort API",
    description="Room comfort monitoring backend for ESP32 sensor chips",
    version=__version__,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan,
)

# CORS middleware
fastapi_app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["ETag", "Last-Modified"],
)

# Include API routes
fastapi_app.include_router(api_router, prefix="/api/v1")


@fastapi_app.exception_handler(ComfortError)
async def domain_exception_handler(request: Request, exc: ComfortError):
    headers = None
    if isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}

    logger.info(
        "Request rejected",
        path=str(request.url.path),
        status_code=exc.status_code,
        error=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
        headers=headers,
    )


@fastapi_app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Convert errors to JSON-serializable format
    errors = []
    for error in exc.errors():
        err = {
            "loc": error.get("loc"),
            "msg": str(error.get("msg")),
            "type": error.get("type"),
        }
        errors.append(err)

    logger.error("Validation error",
                 path=str(request.url.path),
                 errors=errors,
                 body=str(exc.body)[:500] if hasattr(exc, 'body') else None)
    return JSONResponse(
        status_code=422,
        content={"detail": errors}
    )


# Set up Prometheus metrics instrumentation
_instrumentator = None
if settings.metrics_enabled:
    from roomcomfort.core.metrics import setup_metrics, expose_metrics

    _instrumentator = setup_metrics(fastapi_app)
    expose_metrics(fastapi_app, _instrumentator)


@fastapi_app.get("/health")
async def health_check() -> dict[str, str]:
    """Report that the process is up along with its version."""
    return {"status": "healthy", "version": __version__}


@fastapi_app.get("/health/live")
async def liveness_check() -> dict:
    """Report that the application is running."""
    result = health_service.get_liveness()
    return result.to_dict()


@fastapi_app.get("/health/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)) -> dict:
    """Report whether the database and seeded reference data are in place."""
    result = await health_service.get_readiness(db)
    return result.to_dict()


app = fastapi_app
