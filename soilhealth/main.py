"""FastAPI application entrypoint: lifespan, routers, middleware."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from soilhealth.config import CacheBackend, get_settings
from soilhealth.middleware.logging import RequestLoggingMiddleware, configure_structured_logging
from soilhealth.routes import soil_health
from soilhealth.services.score_cache import InMemoryScoreCache, RedisScoreCache, ScoreCache
from soilhealth.services.soil_health_service import SoilHealthService
from soilhealth.services.timeseries import InfluxSqlSource
from soilhealth.workers.cache_scheduler import run_daily_cache_clear

logger = logging.getLogger("soilhealth")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application startup / shutdown lifecycle.

    Startup:
      1. Initialize structured logging
      2. Open the InfluxDB HTTP client
      3. Select the score cache backend (Redis when configured)
      4. Start the daily cache-clear task

    Shutdown:
      1. Cancel the cache-clear task
      2. Close the InfluxDB client and Redis connection pool
    """
    configure_structured_logging()
    settings = get_settings()
    logger.info(
        "Soil health service starting",
        extra={
            "log_level": settings.log_level,
            "cache_backend": settings.cache_backend.value,
            "snapshot_timezone": settings.snapshot_timezone,
        },
    )

    source = InfluxSqlSource.from_settings(settings)
    redis: Redis | None = None
    clear_task: asyncio.Task[None] | None = None
    try:
        cache: ScoreCache
        if settings.cache_backend == CacheBackend.redis:
            redis = Redis.from_url(settings.redis_url, decode_responses=True)
            await redis.ping()
            cache = RedisScoreCache(redis, ttl_seconds=settings.cache_ttl_seconds)
        else:
            cache = InMemoryScoreCache(ttl_seconds=settings.cache_ttl_seconds)

        service = SoilHealthService(source, cache, settings=settings)
        app.state.soil_health_service = service

        if settings.cache_clear_enabled:
            clear_task = asyncio.create_task(run_daily_cache_clear(service.clear_cache, settings))
    except Exception as exc:
        logger.exception("startup failure", extra={"error": str(exc)})
        await source.aclose()
        if redis is not None:
            await redis.aclose()
        raise

    yield

    logger.info("Soil health service shutting down")
    if clear_task is not None:
        clear_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await clear_task
    await source.aclose()
    if redis is not None:
        await redis.aclose()


app = FastAPI(
    title="Soil Health API",
    description=(
        "Soil sensor analytics: snapshot-preferred daily aggregation, weekly health trends, "
        "per-crop safety scoring and a cultivation timeline anchored to the planting date."
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS ────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)


# ── Health check ────────────────────────────────────────────────────────────
@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    """Basic health check: verifies the API process is alive."""
    return {
        "status": "ok",
        "service": "soilhealth",
        "version": "0.1.0",
    }


# ── Router registration ────────────────────────────────────────────────────
app.include_router(soil_health.router, prefix="/api/v1")
