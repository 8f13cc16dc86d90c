from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, settings as default_settings
from .errors import register_exception_handlers
from .observability import configure_logging
from .routers import applications, auth, client_config, health, learning_areas, opportunity, organisation, users
from .seed_data import seed_reference_data
from .storage.factory import build_storage

log = structlog.get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings
    configure_logging(level=settings.LOG_LEVEL, json=settings.LOG_JSON)

    storage = build_storage(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await storage.connect()
        if settings.SEED_SAMPLE_DATA:
            await seed_reference_data(storage)
        log.info("app_started", storage=storage.name, environment=settings.ENVIRONMENT)
        try:
            yield
        finally:
            await storage.close()
            log.info("app_stopped")

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.state.settings = settings
    app.state.storage = storage

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    # routers
    app.include_router(health.router)
    app.include_router(client_config.router)
    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(organisation.router)
    app.include_router(opportunity.router)
    app.include_router(applications.router)
    app.include_router(learning_areas.router)
    return app


app = create_app()
