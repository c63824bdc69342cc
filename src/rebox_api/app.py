from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from rebox_api.core.settings import settings
from rebox_api.db.session import engine
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .services.notifications import get_realtime_relay
from .services.rewards import get_level_schedule


APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    schedule = get_level_schedule()
    logger.info(
        "Rewards level schedule loaded",
        version=schedule.version,
        levels=[level.name for level in schedule.levels],
        source=settings.reward_levels_path or "builtin",
    )
    logger.info(
        "Rewards redemption configured",
        unit=settings.reward_redemption_unit,
        points_per_dollar=settings.reward_points_per_dollar,
        reward_types=settings.reward_types,
    )

    try:
        yield
    finally:
        await engine.dispose()


def create_app() -> FastAPI:
    """Application factory for the ReBox rewards API."""
    configure_logging(
        service_name="rebox-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="ReBox Rewards API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.realtime_relay = get_realtime_relay()

    configure_tracing(
        app,
        service_name="rebox-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
