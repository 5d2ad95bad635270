"""
LegalWatch - FastAPI Application
Legal corpus ingestion and multi-perspective incident detection.

Both engines run as batch jobs; the API triggers them and serves lookups.
"""

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import get_settings
from app.core.database import close_db, init_db
from app.core.errors import setup_exception_handlers
from app.routers import analysis, health, ingestion, legal


# =============================================================================
# Logging Setup
# =============================================================================

def setup_logging():
    """Configure logging based on settings."""
    from app.core.logging_config import setup_logging as configure_logging
    settings = get_settings()
    configure_logging(
        level=settings.log_level.upper(),
        json_format=settings.log_json_format,
        log_file=settings.log_file or None,
    )


# =============================================================================
# Lifespan (Startup/Shutdown)
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup, dispose the engine on shutdown."""
    settings = get_settings()
    logger = logging.getLogger(__name__)

    logger.info("Starting %s v%s", settings.app_name, settings.app_version)
    await init_db()
    if not settings.ai_api_key:
        logger.warning(
            "No API key for AI provider '%s': analysis batches will be refused",
            settings.ai_provider,
        )

    yield

    await close_db()
    logger.info("%s stopped", settings.app_name)


# =============================================================================
# App Factory
# =============================================================================

def create_app() -> FastAPI:
    """
    Application factory.
    Creates and configures the FastAPI application.
    """
    settings = get_settings()
    setup_logging()

    tags_metadata = [
        {
            "name": "Health",
            "description": "Liveness and readiness probes.",
        },
        {
            "name": "Ingestion",
            "description": "Legal corpus ingestion runs and source catalog.",
        },
        {
            "name": "Legal Corpus",
            "description": "Instruments, versions, citable units and citation resolution.",
        },
        {
            "name": "Analysis",
            "description": "Multi-perspective detection batches, recurrence patterns, incidents and alerts.",
        },
    ]

    app = FastAPI(
        title=settings.app_name,
        description=settings.app_description,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.enable_docs else None,
        redoc_url="/api/redoc" if settings.enable_docs else None,
        openapi_url="/api/openapi.json" if settings.enable_docs else None,
        openapi_tags=tags_metadata,
    )

    # =========================================================================
    # Middleware
    # =========================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = request.headers.get("X-Request-Id", str(uuid.uuid4()))
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response

    # =========================================================================
    # Exception Handlers
    # =========================================================================
    setup_exception_handlers(app)

    # =========================================================================
    # Register Routers
    # =========================================================================
    app.include_router(health.router, tags=["Health"])
    app.include_router(ingestion.router)
    app.include_router(legal.router)
    app.include_router(analysis.router)

    return app


# Create the app instance
app = create_app()


# =============================================================================
# Development Server
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
