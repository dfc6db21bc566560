"""Validation endpoint."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from app.models.requests import ValidationRequest
from app.models.responses import ValidationResponse

router = APIRouter()

# Stage of failure → HTTP status
_STATUS_BY_STAGE = {
    None: 200,
    "envelope": 400,
    "structural": 422,
    "field_check": 422,
}


@router.post(
    "/validate",
    response_model=ValidationResponse,
    responses={400: {"model": ValidationResponse}, 422: {"model": ValidationResponse}},
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": ValidationRequest.model_json_schema(by_alias=True)}},
        }
    },
)
async def validate_json(request: Request):
    """Validate a JSON payload against a message type, with an optional field check.

    The body is parsed by the coordinator so that malformed envelopes are
    reported with the same response shape as every other failure.
    """
    coordinator = request.app.state.coordinator
    body = await request.body()
    result = await coordinator.submit(body)
    return JSONResponse(
        status_code=_STATUS_BY_STAGE[result.stage],
        content=result.model_dump(mode="json"),
    )
