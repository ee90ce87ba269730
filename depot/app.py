"""FastAPI application for the artifact depot."""
from __future__ import annotations

import logging

from fastapi import FastAPI

from depot.artifacts.routes import router as artifacts_router
from depot.common.error_envelope import register_error_handlers
from depot.config import runtime_config
from depot.identity.routes_auth import router as auth_router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title="APK Depot")
    register_error_handlers(app)
    app.include_router(auth_router)
    app.include_router(artifacts_router)
    logger.info("depot app configured: %s", runtime_config.config_snapshot())
    return app


app = create_app()
