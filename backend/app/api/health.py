"""Health check endpoint."""

import time
from fastapi import APIRouter, Request

from app.models.responses import HealthResponse, HealthDependency

router = APIRouter()

_start_time = time.time()


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """Service health with descriptor registry status."""
    dependencies = {}

    # Check descriptor registry
    registry = getattr(request.app.state, "registry", None)
    if registry is None or registry.closed:
        dependencies["descriptor_registry"] = HealthDependency(status="unhealthy", message="registry not initialized")
    else:
        snapshot = registry.snapshot()
        if snapshot.generation == 0:
            dependencies["descriptor_registry"] = HealthDependency(
                status="degraded", message="no descriptor set loaded yet"
            )
        else:
            dependencies["descriptor_registry"] = HealthDependency(
                status="healthy",
                message=f"generation {snapshot.generation}, {len(snapshot)} message types",
            )

    # Overall status
    all_healthy = all(d.status == "healthy" for d in dependencies.values())
    any_unhealthy = any(d.status == "unhealthy" for d in dependencies.values())

    if all_healthy:
        status = "healthy"
    elif any_unhealthy:
        status = "unhealthy"
    else:
        status = "degraded"

    return HealthResponse(
        status=status,
        uptime_seconds=round(time.time() - _start_time, 2),
        dependencies=dependencies,
    )
