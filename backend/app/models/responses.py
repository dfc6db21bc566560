"""API response models."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

from app.validators.models import ErrorDetail


class FieldCheckResult(BaseModel):
    """Outcome of the optional field check."""

    status: Literal["passed", "failed"]
    field: str
    reason: Optional[ErrorDetail] = None


class ValidationResponse(BaseModel):
    """Result of `POST /validate`."""

    status: Literal["valid", "invalid"]
    message: str
    message_type: Optional[str] = None
    stage: Optional[Literal["envelope", "structural", "field_check"]] = None  # Set on failure
    reason: Optional[ErrorDetail] = None
    field_check: Optional[FieldCheckResult] = None
    descriptor_generation: Optional[int] = None


class LoadDescriptorResponse(BaseModel):
    """Result of a successful descriptor upload."""

    status: Literal["loaded"] = "loaded"
    file_name: str
    generation: int
    fingerprint: str
    changed: bool
    message_types: list[str]


class DescriptorSummary(BaseModel):
    """Currently installed descriptor set."""

    generation: int
    fingerprint: str
    source: str
    installed_at: Optional[datetime] = None
    message_types: list[str]
    enum_types: list[str]


class HealthDependency(BaseModel):
    """Health status of a single dependency."""

    status: Literal["healthy", "unhealthy", "degraded"]
    message: Optional[str] = None


class HealthResponse(BaseModel):
    """System health check response."""

    status: Literal["healthy", "unhealthy", "degraded"]
    version: str = "0.1.0"
    uptime_seconds: float
    dependencies: dict[str, HealthDependency]
