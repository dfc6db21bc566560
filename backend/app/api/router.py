"""Main API router — combines all endpoint routers."""

from fastapi import APIRouter

from app.api.descriptors import router as descriptors_router
from app.api.health import router as health_router
from app.api.metrics import router as metrics_router
from app.api.validate import router as validate_router

api_router = APIRouter()

# Health check
api_router.include_router(health_router, tags=["Health"])

# JSON validation
api_router.include_router(validate_router, tags=["Validation"])

# Descriptor upload and inspection
api_router.include_router(descriptors_router, tags=["Descriptors"])

# Prometheus scrape router is exported separately; main mounts it only when metrics are enabled
__all__ = ["api_router", "metrics_router"]
