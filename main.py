"""
Marketing integrations hub — application entry point.
"""

from __future__ import annotations

import logging
import sys

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import register_exception_handlers, register_middleware
from config.platforms import get_platform_catalog
from config.settings import config
from connectors.registry import get_connector_registry
from connectors.routes import router as integrations_router
from database.session import create_tables

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "urllib3"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title="AdHub Integrations",
        version="1.0.0",
        description="Per-tenant OAuth integrations and multi-platform campaign aggregation.",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_exception_handlers(app)

    # Routes
    app.include_router(integrations_router, prefix="/api")

    @app.on_event("startup")
    async def on_startup():
        # Refuses to start in production with default secrets
        config.check_deployment()

        if config.database_create_tables:
            await create_tables()

        catalog = get_platform_catalog()
        registry = get_connector_registry()
        oauth_platforms = [e.id for e in catalog if e.requires_oauth]
        missing = [p for p in oauth_platforms if not registry.is_supported(p)]
        logger.info(
            "Platform catalog loaded: %d platforms, %d OAuth", len(catalog), len(oauth_platforms)
        )
        if missing:
            logger.warning("OAuth platforms without a connector (connect will fail closed): %s", missing)

        logger.info("Callback URL: %s", config.oauth_callback_url)
        logger.info("Application ready to accept requests.")

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
