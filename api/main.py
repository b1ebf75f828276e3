"""
RFP Marketplace - FastAPI Application

Thin HTTP adapter over the authorization and lifecycle engine. The engine is
the security boundary; this layer only turns bearer tokens into principals,
exposes the operator maintenance endpoints and maps engine errors to HTTP.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import settings
from config.logging_config import setup_logging
from database.connection import close_db
from api.routes.maintenance import router as maintenance_router
from api.middleware.error_handler import setup_error_handlers
from api.middleware.logging import LoggingMiddleware
from api.middleware.rate_limit import setup_rate_limiting
from workers.queue import close_redis_pool

API_VERSION = "1.0.0"

logger = setup_logging(log_level="INFO")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management."""
    logger.info(f"Starting RFP Marketplace API ({settings.api_env})")
    logger.info(
        f"Expired RFPs close every {settings.lifecycle_sweep_minutes} min"
        f"{' and before status-filtered listings' if settings.lazy_close_on_read else ''}"
    )

    yield

    await close_redis_pool()
    await close_db()
    logger.info("RFP Marketplace API stopped")


def create_app() -> FastAPI:
    """Build the API application."""
    app = FastAPI(
        title="RFP Marketplace API",
        description="Authorization, visibility and lifecycle engine for the RFP marketplace",
        version=API_VERSION,
        lifespan=lifespan
    )

    # Handlers first; middleware added last runs outermost
    setup_error_handlers(app)
    setup_rate_limiting(app)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    app.include_router(maintenance_router, prefix="/api/v1")

    @app.get("/health")
    async def health():
        """Liveness probe."""
        return {
            "status": "healthy",
            "version": API_VERSION,
            "environment": settings.api_env
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_env == "development"
    )
