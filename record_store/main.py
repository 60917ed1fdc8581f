"""
Record Store service
Catalog of records and the orders placed against its stock
"""

from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine

from shared.core import ServiceHealth, setup_logging, RequestLoggingMiddleware, get_logger
from record_store.api.orders import router as orders_router
from record_store.api.records import router as records_router
from record_store.api.responses import register_exception_handlers
from record_store.core_settings import Settings, get_settings
from record_store.domain.access import AccessPolicy, OwnerOrAdminPolicy
from record_store.infrastructure.cache import CacheStore
from record_store.infrastructure.db import build_engine, build_session_factory, init_models
from record_store.infrastructure.migrations import upgrade_database
from record_store.infrastructure.musicbrainz import MetadataLookup, MusicBrainzClient

SERVICE_NAME = "record-store"
SERVICE_DESCRIPTION = "Record catalog and order management service"

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    if app.state.bootstrap:
        setup_logging(
            service_name=SERVICE_NAME,
            level=settings.LOG_LEVEL,
            environment=settings.ENVIRONMENT,
            version=settings.SERVICE_VERSION,
        )
    logger.info(f"Starting {SERVICE_NAME} version {settings.SERVICE_VERSION}")

    if app.state.bootstrap:
        try:
            logger.info("Running database migrations")
            upgrade_database(settings.database_url)
            logger.info("Database migrations completed")
        except Exception as e:
            logger.error(f"Migration error: {e}", exc_info=True)

    try:
        init_models(app.state.engine)
        logger.info("Database models initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database models: {e}")
        raise

    logger.info(f"{SERVICE_NAME} started successfully")
    yield
    logger.info(f"Shutting down {SERVICE_NAME}")
    app.state.engine.dispose()


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    cache: Optional[CacheStore] = None,
    metadata: Optional[MetadataLookup] = None,
    policy: Optional[AccessPolicy] = None,
    bootstrap: bool = True,
) -> FastAPI:
    """Build the application.

    Collaborators default to the ones described by ``settings``; tests pass
    their own and ``bootstrap=False`` to skip logging setup and migrations.
    """
    settings = settings or get_settings()
    engine = engine or build_engine(settings.database_url)

    app = FastAPI(
        title=SERVICE_NAME,
        description=SERVICE_DESCRIPTION,
        version=settings.SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )
    app.state.settings = settings
    app.state.bootstrap = bootstrap
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.cache = cache or CacheStore.from_url(settings.REDIS_URL)
    app.state.metadata = metadata or MusicBrainzClient.from_settings(settings)
    app.state.policy = policy or OwnerOrAdminPolicy()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)

    health = ServiceHealth(SERVICE_NAME, settings.SERVICE_VERSION, engine=engine, cache=app.state.cache)
    app.include_router(health.create_health_router())
    app.include_router(records_router)
    app.include_router(orders_router)

    @app.get("/")
    async def root():
        return {
            "service": SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "status": "running",
            "docs": "/api/docs",
        }

    @app.get("/info")
    async def info():
        return {
            "service": SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "description": SERVICE_DESCRIPTION,
            "environment": settings.ENVIRONMENT,
            "endpoints": {
                "records": "/records",
                "orders": "/orders",
                "health": "/health",
                "ready": "/health/ready",
                "live": "/health/live",
                "metrics": "/metrics",
                "docs": "/api/docs",
            },
        }

    return app


def run() -> None:
    import uvicorn

    uvicorn.run("record_store.main:create_app", factory=True, host="0.0.0.0", port=8000)
