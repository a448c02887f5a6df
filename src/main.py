"""FastAPI application entry point."""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.middleware.error_handler import global_exception_handler
from src.api.middleware.logging import StructuredLoggingMiddleware
from src.api.routes.aml import router as aml_router
from src.api.routes.health import router as health_router
from src.api.routes.payments import router as payments_router
from src.api.routes.policies import router as policies_router
from src.config import settings
from src.domains.aml.collaborators import AnchoringError
from src.services import build_services
from src.shared.logging import setup_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build services on startup, release them on shutdown."""
    setup_logging(settings.log_level, settings.log_json)
    app.state.started_at = time.time()

    logger.info(
        "service_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
    )

    services = await build_services(settings)
    app.state.services = services

    yield

    await services.aclose()
    logger.info("service_shutting_down")


app = FastAPI(
    title="Korea AML & Policy Engine",
    description="AML monitoring, STR reporting and municipal policy validation "
    "for local-currency payments",
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Structured logging middleware
app.add_middleware(StructuredLoggingMiddleware)

# Domain errors map to 4xx/502; anything else is a 500
for exc_class in (ValueError, PermissionError, LookupError, AnchoringError, Exception):
    app.add_exception_handler(exc_class, global_exception_handler)

# Register routers
app.include_router(health_router)
app.include_router(aml_router)
app.include_router(policies_router)
app.include_router(payments_router)
