import logging
from fastapi import FastAPI
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware

from kpi_recon.config import settings
from kpi_recon.logging_config import configure_logging
from kpi_recon.api.v1.routers import all_routers
from kpi_recon.db.session import engine

logger = logging.getLogger(__name__)


# Lifespan handler
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events for FastAPI app."""
    logger.info(
        "KPI reconciliation API started",
        extra={"env": settings.ENV, "schema": settings.KPI_SCHEMA, "priority": settings.SOURCE_PRIORITY},
    )
    yield
    await engine.dispose()
    logger.info("KPI reconciliation API shutting down")


def create_app() -> FastAPI:
    configure_logging(settings.LOG_LEVEL or ("DEBUG" if settings.DEBUG else "INFO"))

    app = FastAPI(
        title=settings.APP_NAME,
        lifespan=lifespan,
        redirect_slashes=False,  # Disable automatic trailing slash redirects
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
    )

    for router in all_routers:
        app.include_router(router)

    return app


# Single app instance
app = create_app()
