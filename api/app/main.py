from contextlib import asynccontextmanager
import asyncio
import logging
import time

from fastapi import FastAPI
from starlette.requests import Request

from app.api.router import api_router
from app.core.config import get_settings
from app.core.telemetry import (
    TelemetryRuntime,
    configure_api_logging,
    setup_api_telemetry,
    shutdown_api_telemetry,
)
from app.jobs.populated_refresh import run_populated_refresher
from app.services.genre_cache import get_populated_genres_cache
from app.services.genres import GenreResolver
from app.services.repository import get_repository

settings = get_settings()
_telemetry_runtime: TelemetryRuntime | None = None
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    refresher: asyncio.Task | None = None
    current_settings = get_settings()
    # Only the process that owns the canonical catalog keeps the cache warm.
    if current_settings.populated_genres_refresh_enabled:
        refresher = asyncio.create_task(
            run_populated_refresher(
                get_populated_genres_cache(),
                lambda: GenreResolver(get_repository()),
                interval_seconds=current_settings.populated_genres_refresh_seconds,
            )
        )
    try:
        yield
    finally:
        if refresher is not None:
            refresher.cancel()
            try:
                await refresher
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("populated genres refresher exited with an error")
        if _telemetry_runtime is not None:
            shutdown_api_telemetry(_telemetry_runtime)
        # Ensure asyncpg pool shuts down on app teardown.
        await get_repository().close()
        get_repository.cache_clear()


configure_api_logging()
app = FastAPI(title=settings.app_name, lifespan=lifespan)
_telemetry_runtime = setup_api_telemetry(app, settings)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    logger.info(
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


app.include_router(api_router)
