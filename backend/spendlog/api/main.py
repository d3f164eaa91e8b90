"""Entry point for the FastAPI application.

This module constructs the FastAPI app, includes all routers and
sets up startup and shutdown events.  Run it with:

```bash
uvicorn spendlog.api.main:app --reload
```
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from spendlog.api.error_handlers import register_exception_handlers
from spendlog.api.routes.extraction import router as extraction_router
from spendlog.api.routes.products import router as products_router
from spendlog.core.config import settings
from spendlog.core.database import get_db_debug_info, init_db
from spendlog.core.observability import init_sentry

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _is_dev() -> bool:
    return (settings.ENVIRONMENT or "development").lower() == "development"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    logger.info("Starting up...")
    if init_sentry("api"):
        logger.info("Sentry SDK initialized (api)")
    if _is_dev():
        # Deployed environments are migrated with Alembic instead
        await init_db()
    yield
    logger.info("Shutting down...")


def create_app() -> FastAPI:
    app = FastAPI(title="Spendlog API", version="1.0.0", lifespan=lifespan)

    allow_origins = ["*"] if _is_dev() else list(settings.BACKEND_CORS_ORIGINS or [])
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials="*" not in allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(extraction_router)
    app.include_router(products_router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {"message": "Welcome to the Spendlog API"}

    @app.api_route("/health", methods=["GET", "HEAD"])
    async def health_check():
        """Health check endpoint (supports GET & HEAD)."""
        return {"status": "healthy"}

    @app.get("/debug/db", include_in_schema=False)
    async def db_debug():
        """Return non-sensitive DB diagnostics (development only)."""
        if not _is_dev():
            return {"ok": False, "message": "disabled in non-development env"}
        return get_db_debug_info()

    return app


app = create_app()
