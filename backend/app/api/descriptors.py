"""Descriptor endpoints — upload surface for the distribution client."""

import base64
import binascii

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from app.config import get_settings
from app.descriptors import RegistryRejected, compile_descriptor_set
from app.models.requests import LoadDescriptorRequest
from app.models.responses import DescriptorSummary, LoadDescriptorResponse
from app.services.metrics import DESCRIPTOR_UPLOADS_TOTAL

logger = structlog.get_logger()

router = APIRouter()


def _rejected(message: str, problems: list[str], status_code: int = 400) -> JSONResponse:
    DESCRIPTOR_UPLOADS_TOTAL.labels(result="rejected").inc()
    return JSONResponse(
        status_code=status_code,
        content={"error": "registry_rejected", "message": message, "problems": problems},
    )


@router.post(
    "/load_descriptor",
    response_model=LoadDescriptorResponse,
    responses={400: {"description": "Descriptor set rejected; registry unchanged"}},
)
async def load_descriptor(payload: LoadDescriptorRequest, request: Request):
    """Replace the active descriptor set with an uploaded FileDescriptorSet."""
    registry = request.app.state.registry
    settings = get_settings()

    try:
        content = base64.b64decode(payload.file_content, validate=True)
    except (binascii.Error, ValueError) as e:
        logger.warning("descriptor_upload_bad_base64", file_name=payload.file_name, error=str(e))
        return _rejected(f"Failed to decode file content for {payload.file_name}", [str(e)])

    if len(content) > settings.MAX_DESCRIPTOR_BYTES:
        return _rejected(
            f"Descriptor set {payload.file_name} is too large",
            [f"{len(content)} bytes exceeds the limit of {settings.MAX_DESCRIPTOR_BYTES}"],
            status_code=413,
        )

    previous = registry.snapshot()
    try:
        descriptor_set = await run_in_threadpool(compile_descriptor_set, content, payload.file_name)
        installed = registry.replace(descriptor_set)
    except RegistryRejected as e:
        logger.warning("descriptor_upload_rejected", file_name=payload.file_name, reason=str(e))
        return _rejected(e.reason, e.problems)

    DESCRIPTOR_UPLOADS_TOTAL.labels(result="loaded").inc()
    return LoadDescriptorResponse(
        file_name=payload.file_name,
        generation=installed.generation,
        fingerprint=installed.fingerprint,
        changed=installed.fingerprint != previous.fingerprint,
        message_types=sorted(installed.messages),
    )


@router.get("/descriptors", response_model=DescriptorSummary)
async def get_descriptors(request: Request):
    """Summary of the installed descriptor set."""
    return DescriptorSummary(**request.app.state.registry.describe())
