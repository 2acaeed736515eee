"""FastAPI application entrypoint: lifespan, routers, middleware."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import text

from etsafe.config import Settings, get_settings
from etsafe.database import engine
from etsafe.middleware.logging import RequestLoggingMiddleware, configure_structured_logging
from etsafe.routes import advisories, alerts
from etsafe.services.rule_engine import RuleEngine
from etsafe.services.sms_provider import get_sms_provider
from etsafe.services.text_generation import build_text_generator

logger = structlog.get_logger("etsafe")


async def _connect_redis(settings: Settings) -> Redis | None:
    """The weather cache works without Redis, so an unreachable server only degrades it."""
    if not settings.redis_enabled:
        return None
    client = Redis.from_url(settings.redis_url, decode_responses=True)
    try:
        await client.ping()
    except (RedisError, OSError) as exc:
        logger.warning("redis_unavailable", redis_url=settings.redis_url, error=str(exc))
        await client.aclose()
        return None
    return client


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application startup / shutdown lifecycle.

    Startup:
      1. Initialize structured logging
      2. Load and validate the advisory rule document (once per process)
      3. Verify database connectivity
      4. Connect to Redis (optional weather cache accelerator)
      5. Build the text generator and SMS provider

    Shutdown:
      1. Close Redis connection pool
      2. Dispose SQLAlchemy engine
    """
    configure_structured_logging()
    settings = get_settings()

    redis: Redis | None = None
    try:
        rule_engine = RuleEngine.from_path(settings.rules_path)
        app.state.rule_engine = rule_engine

        async with engine.connect() as connection:
            await connection.execute(text("SELECT 1"))

        redis = await _connect_redis(settings)
        app.state.redis = redis

        app.state.text_generator = build_text_generator(settings)
        app.state.sms_provider = get_sms_provider(settings)
    except Exception as exc:
        logger.exception("startup_failure", error=str(exc))
        raise

    logger.info(
        "etsafe_started",
        rules_version=rule_engine.version,
        rule_count=len(rule_engine.rules),
        sms_provider=settings.sms_provider.value,
        text_generation=app.state.text_generator is not None,
        weather_cache="redis" if redis is not None else "database",
    )

    yield

    logger.info("etsafe_shutting_down")
    if redis is not None:
        await redis.aclose()
    await engine.dispose()


app = FastAPI(
    title="ET-SAFE API",
    description=(
        "Agricultural early-warning API: weather-risk advisories for registered "
        "farmers and queued SMS alert delivery with retry."
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
        "service": "etsafe",
        "version": "0.1.0",
    }


# ── Router registration ────────────────────────────────────────────────────
app.include_router(advisories.router, prefix="/api/v1")
app.include_router(alerts.router, prefix="/api/v1")
