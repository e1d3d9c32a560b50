from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from loguru import logger

from loyalvest_api.core.settings import settings
from loyalvest_api.db.session import async_session
from .api.errors import register_error_handlers
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .scheduling import EngineJobScheduler
from .workers import MaturitySweepWorker


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


def _schedule_path() -> Path:
    path = Path(settings.engine_job_schedule_path)
    if not path.is_absolute():
        path = Path(__file__).resolve().parent.parent.parent / path
    return path


@asynccontextmanager
async def lifespan(app: FastAPI):
    schedule_path = _schedule_path()
    sweep_worker = MaturitySweepWorker(
        session_factory=_session_factory,
        interval_seconds=settings.maturity_sweep_interval_seconds,
        limit=settings.maturity_sweep_batch_limit,
        trigger_label=settings.maturity_sweep_trigger_label,
    )
    job_scheduler = EngineJobScheduler(session_factory=_session_factory, config_path=schedule_path)

    app.state.maturity_sweep_worker = sweep_worker
    app.state.engine_job_scheduler = job_scheduler

    scheduler_enabled = settings.engine_job_scheduler_enabled
    if scheduler_enabled:
        try:
            job_scheduler.start()
        except FileNotFoundError as exc:
            logger.exception("Engine job scheduler failed to start", error=str(exc))
        else:
            logger.info("Engine job scheduler enabled", schedule_path=str(schedule_path))
    else:
        logger.info("Engine job scheduler disabled", reason="engine_job_scheduler_enabled is false")

    sweep_enabled = settings.maturity_sweep_enabled
    if sweep_enabled and not scheduler_enabled:
        sweep_worker.start()
        logger.info("Maturity sweep worker enabled", interval_seconds=sweep_worker.interval_seconds)
    elif sweep_enabled:
        logger.info("Maturity sweep managed via scheduler", schedule_path=str(schedule_path))
    else:
        logger.info("Maturity sweep worker disabled", reason="maturity_sweep_enabled is false")

    try:
        yield
    finally:
        if sweep_worker.is_running:
            await sweep_worker.stop()
        if job_scheduler.is_running:
            await job_scheduler.stop()


def create_app() -> FastAPI:
    """Application factory for the Loyalvest engine API."""
    configure_logging(
        service_name="loyalvest-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="Loyalvest API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="loyalvest-api",
        service_version=APP_VERSION,
        environment=settings.environment,
        enabled=settings.tracing_enabled,
    )

    register_error_handlers(app)
    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
