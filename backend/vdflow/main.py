"""
VDFlow — FastAPI Application Entry Point

Serves VDF analyses over HTTP. Run with:

    uvicorn vdflow.main:app --app-dir backend
"""

import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vdflow import __version__
from vdflow.cache import get_cache
from vdflow.config import Settings, get_settings
from vdflow.error_handlers import register_error_handlers
from vdflow.middleware.request_logger import RequestLoggerMiddleware
from vdflow.routes import health_router, vdf_router

log = structlog.get_logger("vdflow.startup")

API_V1 = "/v1/api"


def configure_logging(level: str) -> None:
    """Filter structlog output at ``level`` and merge bound request context."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Report data-provider and cache readiness once at startup."""
    settings = get_settings()
    log.info(
        "startup",
        env=settings.app_env,
        scan_days=settings.vdf_scan_days,
        chart_days=settings.vdf_chart_days,
        max_zones=settings.vdf_max_zones,
    )
    if not settings.massive_configured:
        log.warning("config.missing_key", key="massive_api_key", impact="analyses will return 503")
    if not get_cache().available:
        log.warning("redis.unavailable", url=settings.redis_url, detail="every analysis recomputes")
    yield
    log.info("shutdown")


def _install_middleware(app: FastAPI, settings: Settings) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggerMiddleware)

    @app.middleware("http")
    async def add_api_version_header(request, call_next):
        response = await call_next(request)
        response.headers["X-API-Version"] = "v1"
        return response


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="VDFlow",
        description="Volume-delta flow accumulation / distribution detector.",
        version=__version__,
        debug=settings.app_debug and not settings.is_production,
        docs_url=None if settings.is_production else "/docs",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "Health", "description": "Service health and readiness checks"},
            {"name": "VDF", "description": "Accumulation zones, distribution, breakouts"},
        ],
    )

    register_error_handlers(app)
    _install_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(vdf_router, prefix=API_V1, tags=["VDF"])
    return app


app = create_app()
