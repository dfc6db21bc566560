"""Request coordinator — runs one validation request end to end.

Stages, strictly in order, short-circuiting on the first failure:

    envelope    parse the request body and the `json` payload
    structural  bind the payload to the message type (registry snapshot)
    field_check optional policy check on the validated message

The snapshot is taken once per request, so a descriptor upload that lands
mid-request never changes the outcome of that request.
"""

import asyncio
import json
import time
from enum import Enum
from typing import Optional, Union

import structlog
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool

from app.config import get_settings
from app.models.requests import ValidationRequest
from app.models.responses import FieldCheckResult, ValidationResponse
from app.services.metrics import UNKNOWN_TYPE_LABEL, record_validation
from app.services.registry import DescriptorRegistry
from app.validators.engine import ValidationEngine, normalize_payload
from app.validators.models import (
    ErrorDetail,
    InvalidRequest,
    MalformedJson,
    StructuralError,
    ValidationFailure,
)
from app.validators.policy import PolicyEvaluator

logger = structlog.get_logger()


class Stage(str, Enum):
    ENVELOPE = "envelope"
    STRUCTURAL = "structural"
    FIELD_CHECK = "field_check"


class RequestCoordinator:
    """Validates requests against the registry, bounded by a concurrency ceiling."""

    def __init__(
        self,
        registry: DescriptorRegistry,
        engine: Optional[ValidationEngine] = None,
        evaluator: Optional[PolicyEvaluator] = None,
        max_concurrency: Optional[int] = None,
        enable_metrics: Optional[bool] = None,
    ):
        settings = get_settings()
        self.registry = registry
        self.engine = engine or ValidationEngine()
        self.evaluator = evaluator or PolicyEvaluator()
        self.max_concurrency = max_concurrency or settings.MAX_CONCURRENT_VALIDATIONS
        self.enable_metrics = settings.ENABLE_METRICS if enable_metrics is None else enable_metrics
        self._slots = asyncio.Semaphore(self.max_concurrency)

    async def submit(self, body: Union[bytes, str, dict]) -> ValidationResponse:
        """Wait for a worker slot, then run `handle` off the event loop."""
        async with self._slots:
            return await run_in_threadpool(self.handle, body)

    def handle(self, body: Union[bytes, str, dict]) -> ValidationResponse:
        """Validate one request. Never raises for bad input."""
        start_time = time.perf_counter()
        request: Optional[ValidationRequest] = None

        # ── Envelope ──
        try:
            request = self.parse_envelope(body)
            payload = normalize_payload(request.payload, request.json_escaped)
            check = request.check()
        except ValidationFailure as e:
            return self._finish(request, None, start_time, Stage.ENVELOPE, e.to_detail())

        # ── Structural ──
        snapshot = self.registry.snapshot() if request.protobuf else None
        try:
            message = self.engine.validate(snapshot, request.protobuf, payload)
        except StructuralError as e:
            return self._finish(request, snapshot, start_time, Stage.STRUCTURAL, e.to_detail())

        # ── Field check ──
        if check is None:
            return self._finish(request, snapshot, start_time)

        if message is not None:
            outcome = self.evaluator.evaluate(message, request.field_name, check, snapshot)
        else:
            outcome = self.evaluator.evaluate_json(payload, request.field_name, check)

        result = FieldCheckResult(
            status="passed" if outcome.passed else "failed",
            field=outcome.field,
            reason=outcome.reason,
        )
        if outcome.passed:
            return self._finish(request, snapshot, start_time, field_check=result)
        return self._finish(request, snapshot, start_time, Stage.FIELD_CHECK, outcome.reason, field_check=result)

    def parse_envelope(self, body: Union[bytes, str, dict]) -> ValidationRequest:
        """Decode the request body into a ValidationRequest.

        Raises:
            MalformedJson: body is not JSON
            InvalidRequest: body is JSON but not a valid request object
        """
        if isinstance(body, (bytes, str)):
            try:
                body = json.loads(body)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise MalformedJson(f"Request body is not valid JSON: {e}")
            except RecursionError:
                raise MalformedJson("Request body is not valid JSON: nesting is too deep")

        if not isinstance(body, dict):
            raise InvalidRequest("Request body must be a JSON object")

        try:
            return ValidationRequest.model_validate(body)
        except PydanticValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}" for err in e.errors()
            )
            raise InvalidRequest(f"Invalid validation request: {problems}")

    # ── Helper Methods ──

    def _finish(
        self,
        request: Optional[ValidationRequest],
        snapshot,
        start_time: float,
        stage: Optional[Stage] = None,
        reason: Optional[ErrorDetail] = None,
        field_check: Optional[FieldCheckResult] = None,
    ) -> ValidationResponse:
        type_name = request.protobuf if request is not None else None
        generation = snapshot.generation if snapshot is not None else None
        duration = time.perf_counter() - start_time

        if stage is None:
            response = ValidationResponse(
                status="valid",
                message="Valid JSON",
                message_type=type_name,
                field_check=field_check,
                descriptor_generation=generation,
            )
            logger.info(
                "validation_succeeded",
                message_type=type_name,
                field_check=field_check.status if field_check else None,
                duration_ms=round(duration * 1000, 3),
            )
        else:
            response = ValidationResponse(
                status="invalid",
                message=reason.message,
                message_type=type_name,
                stage=stage.value,
                reason=reason,
                field_check=field_check,
                descriptor_generation=generation,
            )
            logger.info(
                "validation_failed",
                message_type=type_name,
                stage=stage.value,
                code=reason.code,
                path=reason.path,
                duration_ms=round(duration * 1000, 3),
            )

        if self.enable_metrics:
            record_validation(
                self._metric_label(request, snapshot),
                request.field_check if request is not None else False,
                response.status,
                duration,
            )
        return response

    def _metric_label(self, request: Optional[ValidationRequest], snapshot) -> Optional[str]:
        """Installed type name for the metrics label; caller text never becomes a label."""
        if request is None:
            return UNKNOWN_TYPE_LABEL
        if not request.protobuf:
            return None
        descriptor = snapshot.message(request.protobuf) if snapshot is not None else None
        return descriptor.full_name if descriptor is not None else UNKNOWN_TYPE_LABEL
