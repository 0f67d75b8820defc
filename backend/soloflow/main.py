from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from soloflow.api.routes import admin, auth, billing, health, notifications, realtime
from soloflow.core.config import settings
from soloflow.core.logging_setup import logger
from soloflow.db.session import init_db
from soloflow.jobs import MAINTENANCE_JOB_ID, run_maintenance_job


def _build_scheduler() -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        run_maintenance_job,
        CronTrigger(hour=settings.maintenance_cron_hour, minute=settings.maintenance_cron_minute, timezone="UTC"),
        id=MAINTENANCE_JOB_ID,
        name="Subscription Maintenance",
        replace_existing=True,
    )
    return scheduler


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncGenerator[None, None]:
    init_db()

    scheduler: AsyncIOScheduler | None = None
    if settings.scheduler_enabled:
        scheduler = _build_scheduler()
        scheduler.start()
        logger.info(
            "Background job scheduler started (maintenance at %02d:%02d UTC)",
            settings.maintenance_cron_hour,
            settings.maintenance_cron_minute,
        )

    yield

    if scheduler is not None:
        scheduler.shutdown(wait=False)
        logger.info("Background job scheduler stopped")


def _normalize_origin(value: str | None) -> str | None:
    if not value:
        return None
    cleaned = value.strip().rstrip("/")
    return cleaned or None


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.project_name,
        debug=settings.debug,
        lifespan=lifespan,
    )

    public_front_base = settings.resolved_public_app_url()
    raw_origins = settings.allowed_origins + ([public_front_base] if public_front_base else [])

    origins: list[str] = []
    for item in raw_origins:
        normalized = _normalize_origin(item)
        if normalized and normalized not in origins:
            origins.append(normalized)

    logger.info("CORS origins: %s", origins)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(health.router, prefix="/health")
    application.include_router(auth.router, prefix=settings.api_v1_str)
    application.include_router(billing.router, prefix=settings.api_v1_str)
    application.include_router(admin.router, prefix=settings.api_v1_str)
    application.include_router(notifications.router, prefix=settings.api_v1_str)
    application.include_router(realtime.router)

    @application.get("/")
    def root() -> dict[str, str]:
        return {"service": settings.project_name}

    logger.info("%s initialized", settings.project_name)
    return application


app = create_app()
