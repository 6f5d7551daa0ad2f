"""FastAPI application wiring for the identity service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.admin_routes import router as admin_router
from .api.auth_routes import router as auth_router
from .api.errors import install_error_handlers
from .config import Settings, get_settings
from .domain.roles import get_profile
from .domain.service import AccountService
from .events import EventPublisher, NullEventPublisher, RedisEventPublisher
from .repository import AccountRepository
from .security.passwords import PasswordHasher

logger = logging.getLogger(__name__)

settings = get_settings()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def build_publisher(settings: Settings) -> EventPublisher:
    """Return the Redis publisher when configured, else a no-op publisher."""
    if settings.events_backend == "redis" and settings.redis_url:
        import redis

        logger.info("publishing account events on %s", settings.events_channel)
        return RedisEventPublisher(redis.from_url(settings.redis_url), settings.events_channel)
    return NullEventPublisher()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    repository = AccountRepository(pool)
    if settings.auto_migrate:
        repository.ensure_schema()
    app.state.pool = pool
    app.state.enforce_password_change = settings.enforce_password_change
    app.state.account_service = AccountService(
        repository,
        PasswordHasher(rounds=settings.bcrypt_rounds),
        get_profile(settings.role_profile),
        build_publisher(settings),
    )
    logger.info("%s ready with role profile %s", settings.app_name, settings.role_profile)
    try:
        yield
    finally:
        pool.close()


configure_logging(settings.log_level)

app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)

install_error_handlers(app, debug=settings.environment == "development")


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", tags=["health"])
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(auth_router)
app.include_router(admin_router)
