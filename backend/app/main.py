"""Data Quality Validator — JSON validation against hot-swappable protobuf schemas.

Main FastAPI application with lifespan management and global error handling.
"""

import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.api.router import api_router, metrics_router
from app.logging_conf import configure_logging, parse_log_level
from app.services.coordinator import RequestCoordinator
from app.services.registry import DescriptorRegistry
from app.validators.engine import ValidationEngine

configure_logging(get_settings())

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    settings = get_settings()

    # ── Startup ──
    logger.info(
        "app_starting",
        debug=settings.DEBUG,
        max_concurrent_validations=settings.MAX_CONCURRENT_VALIDATIONS,
        metrics_enabled=settings.ENABLE_METRICS,
    )

    # Registry starts empty until the distribution client uploads a set
    app.state.registry = DescriptorRegistry()
    app.state.coordinator = RequestCoordinator(
        app.state.registry,
        engine=ValidationEngine(max_depth=settings.MAX_NESTING_DEPTH),
        max_concurrency=settings.MAX_CONCURRENT_VALIDATIONS,
        enable_metrics=settings.ENABLE_METRICS,
    )

    logger.info("app_started")

    yield

    # ── Shutdown ──
    logger.info("app_shutting_down")

    app.state.registry.close()

    logger.info("app_stopped")


# ── Create Application ──

app = FastAPI(
    title="Data Quality Validator",
    description=(
        "Validates JSON payloads against protobuf message types loaded at runtime, "
        "with optional field-level content checks."
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ── Global Exception Handlers ──

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all error handler for unhandled exceptions."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again.",
        },
    )


# ── Routes ──

app.include_router(api_router)
if get_settings().ENABLE_METRICS:
    app.include_router(metrics_router, tags=["Metrics"])


# ── Root endpoint ──

@app.get("/")
async def root():
    """Root endpoint — API info."""
    return {
        "name": "Data Quality Validator",
        "version": "0.1.0",
        "description": "JSON validation against runtime-loaded protobuf descriptors",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=logging.getLevelName(parse_log_level(settings.LOG_LEVEL)).lower(),
    )
