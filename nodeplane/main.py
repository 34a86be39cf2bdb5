from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s [%(name)s] %(message)s",
    stream=sys.stdout,
)

from fastapi import FastAPI

from nodeplane.auth import TokenCodec
from nodeplane.clock import Clock, SystemClock
from nodeplane.db.session import Database
from nodeplane.errors import register_error_handlers
from nodeplane.routers.commands import router as commands_router
from nodeplane.routers.mqtt import router as mqtt_router
from nodeplane.services.notifier import LogPublisher, Publisher
from nodeplane.settings import Settings, get_settings

log = logging.getLogger(__name__)

INSECURE_DEFAULTS = {"change-me", "password", "admin", "secret", ""}


def validate_security_settings(settings: Settings) -> None:
    """Refuse to start with a default signing secret."""
    if settings.secret_key not in INSECURE_DEFAULTS:
        return

    msg = "  - SECRET_KEY is set to a default/weak value"
    if settings.allow_insecure:
        log.warning(
            f"SECURITY WARNING (bypassed via ALLOW_INSECURE):\n{msg}\n"
            "This is UNSAFE for production use!"
        )
    else:
        log.error(
            f"SECURITY ERROR - Cannot start with insecure configuration:\n{msg}\n\n"
            "Set SECRET_KEY to a long random value.\n\n"
            "To bypass (DEVELOPMENT ONLY): Set ALLOW_INSECURE=true"
        )
        sys.exit(1)


def create_app(
    settings: Settings | None = None,
    *,
    database: Database | None = None,
    clock: Clock | None = None,
    publisher: Publisher | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    owns_database = database is None
    logging.getLogger().setLevel(settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        validate_security_settings(settings)
        yield
        if owns_database:
            app.state.database.dispose()

    codec = TokenCodec(settings.secret_key, settings.token_max_age_seconds)

    app = FastAPI(title="nodeplane API", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database or Database(settings.database_url)
    app.state.clock = clock or SystemClock()
    app.state.publisher = publisher or LogPublisher()
    app.state.codec = codec

    register_error_handlers(app)

    app.include_router(commands_router)
    app.include_router(mqtt_router)

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/api/version")
    def version():
        return {
            "version": settings.np_version,
            "git_sha": settings.np_git_sha,
            "build_date": settings.np_build_date,
        }

    return app
