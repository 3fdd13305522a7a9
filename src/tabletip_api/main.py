from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tabletip_api.api.errors import install_error_handlers
from tabletip_api.api.routers.health import router as health_router
from tabletip_api.api.routers.qr import router as qr_router
from tabletip_api.api.routers.reviews import router as reviews_router
from tabletip_api.api.routers.tips import router as tips_router
from tabletip_api.observability.logging import access_log, configure_logging
from tabletip_api.observability.metrics import render_metrics
from tabletip_api.observability.middleware import RequestContextMiddleware
from tabletip_api.observability.tracing import configure_tracing
from tabletip_api.settings import get_settings


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging()
    logger = logging.getLogger("tabletip_api.main")
    app = FastAPI(title="TableTip API", version="0.1.0")

    # Browser Origin headers carry no trailing slash, AnyHttpUrl adds one.
    cors_origins = [str(o).rstrip("/") for o in settings.api_cors_origins]
    logger.info("Configuring CORS", extra={"allowed_origins": cors_origins})
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware, access_log=access_log)

    install_error_handlers(app)

    app.include_router(health_router)
    app.include_router(qr_router)
    app.include_router(tips_router)
    app.include_router(reviews_router)

    app.add_api_route(
        "/metrics", render_metrics, methods=["GET"], include_in_schema=False
    )

    configure_tracing()
    return app


app = create_app()
